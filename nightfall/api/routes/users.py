"""User API routes."""

from fastapi import APIRouter, Depends

from nightfall.api.dependencies import get_repository
from nightfall.api.schemas import RegisterUserRequest
from nightfall.storage import Repository, User, require_user
from nightfall.wallets import validate_wallet

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("/register")
async def register_user(
    request: RegisterUserRequest,
    repository: Repository = Depends(get_repository),
):
    validate_wallet(request.wallet_address)
    user = User(
        username=request.username,
        wallet_address=request.wallet_address,
        avatar=request.avatar or request.username[0].upper(),
    )
    return repository.create_user(user)


@router.get("/wallet/{address}")
async def get_user_by_wallet(
    address: str,
    repository: Repository = Depends(get_repository),
):
    return require_user(repository, address)
