# The module is to define the API endpoint that confirms or cancels a pending Bizum.
# Version: 0.1.0

from fastapi import APIRouter, Depends
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.models.api_models import ConfirmTransactionRequest, ConfirmTransactionResponse
from ai_agent.utils.logger import console

router = APIRouter()


@router.post("/confirm", response_model=ConfirmTransactionResponse,
             response_model_exclude_none=True, response_model_by_alias=True)
async def confirm_transaction(request: ConfirmTransactionRequest, agent: Agent = Depends(get_agent)):
    """
    Resolves a pending Bizum exactly once. Unknown, already resolved or
    expired confirmations come back with success=False and an error code.
    """
    console.info(f"Bizum confirmation '{request.confirmation_id}' from '{request.user_id}' (confirmed={request.confirmed})")
    result = await agent.confirm_transaction(
        request.user_id, request.confirmation_id, request.confirmed, request.signature
    )
    return ConfirmTransactionResponse(
        success=result.get("success", False),
        message=result.get("message"),
        details=result.get("details"),
        transaction=result.get("transaction"),
        error=result.get("error"),
        error_code=result.get("error_code"),
    )
