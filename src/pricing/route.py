from __future__ import annotations

from collections import defaultdict
from fractions import Fraction
from typing import Optional

from core.base_types import ONE_HUNDRED_PERCENT, Currency, Token, TokenAmount

from .pools import Pool


class Route:
    """
    Represents a swap route through one or more pools.

    ``input``/``output`` may be native currencies; the path itself is made
    of wrapped tokens: input.wrapped -> intermediate... -> output.wrapped.
    """

    def __init__(self, pools: list[Pool], input: Currency, output: Currency):
        if not pools:
            raise ValueError("route needs at least one pool")
        chain_id = pools[0].chain_id
        if any(pool.chain_id != chain_id for pool in pools):
            raise ValueError("all pools must be on the same chain")

        token_in = input.wrapped
        if not pools[0].involves(token_in):
            raise ValueError("input currency is not in the first pool")

        path: list[Token] = [token_in]
        for pool in pools:
            current = path[-1]
            if not pool.involves(current):
                raise ValueError("pools do not form a connected path")
            path.append(pool.other(current))

        if path[-1] != output.wrapped:
            raise ValueError("output currency is not in the last pool")

        self.pools = pools
        self.path = path
        self.input = input
        self.output = output

    @property
    def chain_id(self) -> int:
        return self.pools[0].chain_id

    @property
    def protocol(self) -> str:
        protocols = {pool.protocol for pool in self.pools}
        return protocols.pop() if len(protocols) == 1 else "mixed"

    @property
    def mid_price(self) -> Fraction:
        """Product of per-hop mid prices, in raw output units per raw input unit."""
        price = Fraction(1)
        for pool, token_in in zip(self.pools, self.path):
            price *= pool.mid_price(token_in)
        return price

    @property
    def fee_fraction(self) -> Fraction:
        """Share of the input kept by LPs: 1 - prod(1 - fee_hop)."""
        remaining = ONE_HUNDRED_PERCENT
        for pool in self.pools:
            remaining *= ONE_HUNDRED_PERCENT - pool.fee_fraction
        return ONE_HUNDRED_PERCENT - remaining

    def get_output(self, amount_in: TokenAmount) -> TokenAmount:
        """Simulate full route, return final output."""
        amount = amount_in.wrapped
        for pool in self.pools:
            amount = pool.get_amount_out(amount)
        return TokenAmount(self.output, amount.raw)

    def get_input(self, amount_out: TokenAmount) -> TokenAmount:
        """Walk the route backwards for an exact output."""
        amount = amount_out.wrapped
        for pool in reversed(self.pools):
            amount = pool.get_amount_in(amount)
        return TokenAmount(self.input, amount.raw)

    def __repr__(self) -> str:
        hops = " -> ".join(str(token) for token in self.path)
        return f"Route({hops})"


class RouteFinder:
    """
    Finds candidate routes between two currencies over a set of pools.
    """

    def __init__(self, pools: list[Pool]):
        self.pools = pools
        self.graph = self._build_graph()

    def _build_graph(self) -> dict[Token, list[tuple[Pool, Token]]]:
        """
        Build adjacency graph: token -> [(pool, other_token), ...]
        """
        graph: dict[Token, list[tuple[Pool, Token]]] = defaultdict(list)
        for pool in self.pools:
            graph[pool.token0].append((pool, pool.token1))
            graph[pool.token1].append((pool, pool.token0))
        return graph

    def find_all_routes(
        self,
        currency_in: Optional[Currency],
        currency_out: Optional[Currency],
        max_hops: int = 2,
        allow_mixed: bool = False,
    ) -> list[Route]:
        """
        Find all simple routes up to max_hops, in discovery order.

        A pool is used at most once and no token is revisited. Routes that
        mix v2 and v3 pools are dropped unless ``allow_mixed`` is set; no
        single router executes them.
        """
        if currency_in is None or currency_out is None:
            return []
        if max_hops < 1:
            raise ValueError("max_hops must be at least 1")
        token_in = currency_in.wrapped
        token_out = currency_out.wrapped
        if token_in == token_out:
            return []

        routes: list[Route] = []

        def walk(token: Token, used: list[Pool], seen: set[Token]) -> None:
            for pool, next_token in self.graph.get(token, []):
                if pool in used or next_token in seen:
                    continue
                if next_token == token_out:
                    routes.append(Route(used + [pool], currency_in, currency_out))
                elif len(used) + 1 < max_hops:
                    walk(next_token, used + [pool], seen | {next_token})

        walk(token_in, [], {token_in})
        if not allow_mixed:
            routes = [route for route in routes if route.protocol != "mixed"]
        return routes
