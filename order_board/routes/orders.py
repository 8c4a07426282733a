from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from order_board.pipeline import BoardPipeline
from order_board.routes.board import get_pipeline
from order_board.sink import OrderNotFoundError, StaleTransitionError
from order_board.transitions import InvalidTransitionError, TransitionController, TransitionError
from order_board.view import order_view

router = APIRouter(prefix="/orders", tags=["orders"])


class TransitionBody(BaseModel):
    target: str = Field(..., description="preparing | ready | completed")
    actor: str | None = Field(default=None, description="Who performed the transition")


class AdvanceBody(BaseModel):
    actor: str | None = Field(default=None, description="Who performed the transition")


def get_controller(request: Request) -> TransitionController:
    return request.app.state.controller


def _error(status_code: int, order_id: str, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "order_id": order_id, "error": error, **extra})


def _failed(order_id: str, e: TransitionError) -> JSONResponse:
    if isinstance(e.cause, OrderNotFoundError):
        return _error(404, order_id, "order_not_found")
    if isinstance(e.cause, StaleTransitionError):
        return _error(409, order_id, "stale_transition", current_status=e.cause.current_status)
    return _error(502, order_id, "update_failed", detail=str(e.cause))


@router.get("/{order_id}")
async def order_details(order_id: str, pipeline: BoardPipeline = Depends(get_pipeline)) -> JSONResponse:
    order = pipeline.state.get(order_id)
    if order is None:
        return _error(404, order_id, "order_not_found")
    return JSONResponse(status_code=200, content=order_view(order, pipeline.now(), pipeline.policy))


@router.post("/{order_id}/transition")
async def transition_order(
    order_id: str,
    body: TransitionBody,
    controller: TransitionController = Depends(get_controller),
) -> JSONResponse:
    """
    Request a forward status change. 202 once the store accepted the write; the board
    reflects it with the next snapshot. Failures are not retried.
    """
    try:
        await controller.transition(order_id, body.target, actor=body.actor)
    except InvalidTransitionError as e:
        return _error(409, order_id, "invalid_transition", target=e.target)
    except TransitionError as e:
        return _failed(order_id, e)
    return JSONResponse(status_code=202, content={"status": "accepted", "order_id": order_id, "target": body.target})


@router.post("/{order_id}/advance")
async def advance_order(
    order_id: str,
    body: AdvanceBody,
    pipeline: BoardPipeline = Depends(get_pipeline),
    controller: TransitionController = Depends(get_controller),
) -> JSONResponse:
    """The board's action button: move the order to the next status after the one shown."""
    order = pipeline.state.get(order_id)
    if order is None:
        return _error(404, order_id, "order_not_found")
    try:
        target = await controller.advance(order, actor=body.actor)
    except InvalidTransitionError as e:
        return _error(409, order_id, "invalid_transition", current_status=e.current_status)
    except TransitionError as e:
        return _failed(order_id, e)
    return JSONResponse(status_code=202, content={"status": "accepted", "order_id": order_id, "target": target.value})
