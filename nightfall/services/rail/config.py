from pydantic import BaseModel


class RailConfig(BaseModel):
    """Configuration for the payment rail."""

    devnet_rpc_url: str = "https://api.devnet.solana.com"
    mainnet_rpc_url: str = "https://api.mainnet-beta.solana.com"
    use_mainnet: bool = False
    paper_mode: bool = True
    payer_secret: str = ""  # base58 keypair of the payout wallet
    commitment: str = "confirmed"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    confirm_timeout_seconds: float = 60.0  # poll budget before a send is reported unconfirmed
    confirm_poll_seconds: float = 2.0

    @property
    def rpc_url(self) -> str:
        """Return the RPC endpoint for the selected cluster."""
        return self.mainnet_rpc_url if self.use_mainnet else self.devnet_rpc_url
