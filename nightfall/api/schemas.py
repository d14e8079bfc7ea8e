"""Request bodies for the HTTP API."""

from pydantic import BaseModel, Field


class RegisterUserRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    wallet_address: str
    avatar: str | None = None


class CreateGameRequest(BaseModel):
    """Request to open a new game lobby."""

    created_by: str
    bet_amount: str = Field(description="Stake per participant in SOL, as a decimal string")
    game_type: str = "coinflip"
    min_players: int | None = None
    max_players: int | None = None
    playing_fee: str | None = None


class JoinGameRequest(BaseModel):
    wallet: str


class CompleteGameRequest(BaseModel):
    winner: str


class CancelGameRequest(BaseModel):
    wallet: str
