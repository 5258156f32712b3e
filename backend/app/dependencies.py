"""Shared FastAPI dependencies."""

import asyncio
from functools import partial
from typing import Annotated, Any, Callable

from fastapi import Depends, HTTPException, Request, status

from gigmarket import Marketplace


def get_market(request: Request) -> Marketplace:
    """The Marketplace built at startup."""
    return request.app.state.market


Market = Annotated[Marketplace, Depends(get_market)]


async def run_sync(fn: Callable, *args, **kwargs) -> Any:
    """Run a blocking core call off the event loop.

    Plain ValueErrors from the core are input problems and become 400s;
    typed MarketErrors pass through to the registered handler.
    """
    try:
        return await asyncio.to_thread(partial(fn, *args, **kwargs))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
