"""Well-known tokens used for routing bases and the permit allow-list."""

from core.base_types import WRAPPED_NATIVE, Address, Token

WETH = WRAPPED_NATIVE[1]
DAI = Token(1, Address("0x6B175474E89094C44Da98b954EedeAC495271d0F"), 18, "DAI", "Dai Stablecoin")
USDC_MAINNET = Token(1, Address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"), 6, "USDC", "USD//C")
USDT = Token(1, Address("0xdAC17F958D2ee523a2206206994597C13D831ec7"), 6, "USDT", "Tether USD")
WBTC = Token(1, Address("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"), 8, "WBTC", "Wrapped BTC")

UNI_ADDRESS = Address("0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984")
UNI: dict[int, Token] = {
    chain_id: Token(chain_id, UNI_ADDRESS, 18, "UNI", "Uniswap")
    for chain_id in (1, 3, 4, 5, 42)
}

BASES_TO_CHECK_TRADES_AGAINST: dict[int, list[Token]] = {
    1: [WETH, DAI, USDC_MAINNET, USDT, WBTC],
}


def bases_for_chain(chain_id: int) -> list[Token]:
    bases = BASES_TO_CHECK_TRADES_AGAINST.get(chain_id)
    if bases is not None:
        return list(bases)
    wrapped = WRAPPED_NATIVE.get(chain_id)
    return [wrapped] if wrapped is not None else []
