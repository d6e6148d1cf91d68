"""Swap endpoints.

Build endpoints record an order and return what the user needs next: the
typed payload to sign (EVM source) or just the order hash (Cosmos source).
Execute endpoints drive the coordinator; chain failures surface as
``RELAYER_EXECUTE_FAILED`` with the cause kept in the logs.
"""

from fastapi import APIRouter, Depends, Request

from fusionrelay.api.contracts import (
    ApiResponse,
    ConfirmSwapRequest,
    ExecuteSwapRequest,
    RevealSecretRequest,
    UserIntentRequest,
)
from fusionrelay.services import SwapCoordinator

router = APIRouter(prefix="/api/swap", tags=["swap"])


def get_coordinator(request: Request) -> SwapCoordinator:
    return request.app.state.coordinator


@router.post("/eth_to_cosmos/build", response_model=ApiResponse)
async def build_eth_to_cosmos(
    intent: UserIntentRequest, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    """Build an EVM-sourced order and return the EIP-712 payload to sign."""
    order = await coordinator.build_evm_to_cosmos(intent.to_intent())
    return ApiResponse(success=True, data={"orderHash": order.order_hash, "typedData": order.typed_data})


@router.post("/cosmos_to_eth/build", response_model=ApiResponse)
async def build_cosmos_to_eth(
    intent: UserIntentRequest, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    order = await coordinator.build_cosmos_to_evm(intent.to_intent())
    return ApiResponse(success=True, data={"orderHash": order.order_hash})


@router.post("/eth_to_cosmos", response_model=ApiResponse)
async def execute_eth_to_cosmos(
    request: ExecuteSwapRequest, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    """Submit the maker signature and deploy both escrows."""
    order = await coordinator.execute_evm_to_cosmos(request.order_hash, request.signature)
    return ApiResponse(success=True, data={"executed": True, "order": order.to_dict()})


@router.post("/cosmos_to_eth", response_model=ApiResponse)
async def confirm_cosmos_to_eth(
    request: ConfirmSwapRequest, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    order = await coordinator.confirm_cosmos_to_evm(request.order_hash, request.src_cancellation_timestamp)
    return ApiResponse(success=True, data={"executed": True, "order": order.to_dict()})


@router.post("/reveal", response_model=ApiResponse)
async def reveal_secret(
    request: RevealSecretRequest, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    order = await coordinator.reveal_secret(request.order_hash, request.secret)
    return ApiResponse(success=True, data={"withdrawn": True, "order": order.to_dict()})


@router.get("/chains", response_model=ApiResponse)
async def get_supported_chains(coordinator: SwapCoordinator = Depends(get_coordinator)) -> ApiResponse:
    """EVM chain ids with a configured resolver."""
    return ApiResponse(success=True, data={"chains": coordinator.supported_chains()})


@router.get("/cosmos/config", response_model=ApiResponse)
async def get_cosmos_factory_config(coordinator: SwapCoordinator = Depends(get_coordinator)) -> ApiResponse:
    return ApiResponse(success=True, data=await coordinator.get_cosmos_factory_config())


@router.get("/cosmos/htlcs/{maker}", response_model=ApiResponse)
async def get_cosmos_htlcs_by_maker(
    maker: str, coordinator: SwapCoordinator = Depends(get_coordinator)
) -> ApiResponse:
    return ApiResponse(success=True, data=await coordinator.get_cosmos_htlcs_by_maker(maker))


@router.get("/user/{address}", response_model=ApiResponse)
async def get_user_orders(address: str, coordinator: SwapCoordinator = Depends(get_coordinator)) -> ApiResponse:
    """All orders of a user, newest first."""
    orders = await coordinator.get_orders_by_user(address)
    return ApiResponse(
        success=True, data={"orders": [o.to_dict() for o in orders], "totalOrders": len(orders)}
    )


@router.get("/{order_hash}/htlc", response_model=ApiResponse)
async def get_order_htlc(order_hash: str, coordinator: SwapCoordinator = Depends(get_coordinator)) -> ApiResponse:
    return ApiResponse(success=True, data=await coordinator.get_cosmos_htlc(order_hash))


@router.get("/{order_hash}", response_model=ApiResponse)
async def get_order(order_hash: str, coordinator: SwapCoordinator = Depends(get_coordinator)) -> ApiResponse:
    order = await coordinator.get_order(order_hash)
    return ApiResponse(success=True, data=order.to_dict())
