from .solana import (
    PaymentGateway,
    SolanaClient,
    SolanaRpcError,
    create_payment_gateway,
    is_valid_wallet,
    load_keypair
)
