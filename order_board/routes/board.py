from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from order_board.classify import counts_by_status
from order_board.ordering import DEFAULT_TAB
from order_board.pipeline import BoardPipeline
from order_board.view import board_view

router = APIRouter(tags=["board"])

BoardTab = Literal["all", "pending", "preparing", "ready", "completed"]


def get_pipeline(request: Request) -> BoardPipeline:
    return request.app.state.pipeline


@router.get("/board")
async def board(
    tab: BoardTab = Query(default=DEFAULT_TAB, description="Status tab, or 'all'"),
    pipeline: BoardPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    Visible orders for a tab (urgent first, then oldest first) with per-status counts.
    stale=true means the subscription reported an error after the last good snapshot.
    """
    content = board_view(
        pipeline.state,
        tab,
        pipeline.now(),
        pipeline.policy,
        stale=pipeline.stale,
        last_error=pipeline.last_error,
    )
    return JSONResponse(status_code=200, content=content)


@router.get("/counts")
async def counts(pipeline: BoardPipeline = Depends(get_pipeline)) -> JSONResponse:
    return JSONResponse(status_code=200, content=counts_by_status(pipeline.state.orders.values()))
