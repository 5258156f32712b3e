"""Storage backends for gigmarket.

In-memory backends live beside each subsystem's storage protocol; this
package holds the shared SQLite backend.
"""

from gigmarket.storage.sqlite import SQLiteMarketStorage

__all__ = ["SQLiteMarketStorage"]
