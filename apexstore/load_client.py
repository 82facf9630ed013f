#!/usr/bin/env python3
"""
Apex Store load client (async)

Drives concurrent donations through the MockPay flow:
  1) POST /api/create-checkout (type=donation, amount, minecraft_username)
     -> 303 to /mockpay/{psid}
  2) POST /mockpay/{psid}/emit (t=succeeded) -> webhook -> ledger
  3) GET /api/top-donators once everything settled, and compare with the
     top 50 of what was actually paid

A mismatch means webhook deliveries clobbered each other's ledger writes.

Usage:
  GATEWAY_BACKEND=mock WEBHOOK_ALLOW_UNSIGNED=1 LEDGER_BACKEND=memory \
      uvicorn apexstore.server:app
  python -m apexstore.load_client --base http://localhost:8000 \
                                  --total 200 --concurrency 50

Notes:
- Start from an empty ledger; earlier donations skew the comparison.
- --http2 needs the h2 package: pip install "apexstore[load]".
"""

import argparse
import asyncio
import random
import string
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

import httpx

from .model.ledger import TOP_DONATIONS


def _rand_name() -> str:
    return "".join(random.choices(string.ascii_letters + string.digits,
                                  k=10))


def _rand_amount() -> Decimal:
    return Decimal(random.randint(100, 100_000)) / 100


@dataclass
class Result:
    ok: bool
    name: str
    amount: Decimal
    t_checkout: float = 0.0
    t_emit: float = 0.0
    err: Optional[str] = None


@dataclass
class Stats:
    results: List[Result] = field(default_factory=list)

    def add(self, r: Result):
        self.results.append(r)

    def expected_top(self) -> List[Decimal]:
        paid = sorted((r.amount for r in self.results if r.ok),
                      reverse=True)
        return paid[:TOP_DONATIONS]

    def summary(self) -> Dict[str, float]:
        lat = [r.t_checkout + r.t_emit for r in self.results if r.ok]

        def pct(p):
            if not lat:
                return 0.0
            x = sorted(lat)
            k = int(max(0, min(len(x)-1, round(p/100*(len(x)-1)))))
            return x[k]
        return {
            "total": len(self.results),
            "ok": sum(1 for r in self.results if r.ok),
            "error": sum(1 for r in self.results if not r.ok),
            "p50_s": pct(50),
            "p90_s": pct(90),
            "p99_s": pct(99),
            "avg_s": (sum(lat)/len(lat)) if lat else 0.0,
        }

    def print(self, elapsed_s: float, observed: List[Decimal]):
        s = self.summary()
        expected = self.expected_top()
        print("\n=== Load Summary ===")
        print(f"Total: {int(s['total'])}   OK: {int(s['ok'])}   "
              f"ERROR: {int(s['error'])}")
        print(
            f"Latency (checkout + emit): "
            f"avg {s['avg_s']:.3f}s   p50 {s['p50_s']:.3f}s   "
            f"p90 {s['p90_s']:.3f}s   p99 {s['p99_s']:.3f}s"
        )
        print(
            f"Wall time: {elapsed_s:.3f}s   "
            f"Throughput: {s['total']/elapsed_s:.1f} ops/s"
        )
        if observed == expected:
            print(f"Top donors: OK ({len(observed)} entries match)")
        else:
            missing = len(set(expected) - set(observed))
            print(f"Top donors: MISMATCH ({len(observed)} observed, "
                  f"{len(expected)} expected, {missing} amounts missing)")


async def one_donation(client: httpx.AsyncClient, base: str) -> Result:
    r = Result(ok=False, name=_rand_name(), amount=_rand_amount())

    # 1) checkout, do not follow the 303
    t0 = time.perf_counter()
    try:
        resp = await client.post(
            f"{base}/api/create-checkout",
            data={"type": "donation", "amount": str(r.amount),
                  "minecraft_username": r.name},
            timeout=30.0,
        )
        if resp.status_code != 303:
            r.err = f"checkout HTTP {resp.status_code}"
            return r
        redirect_url = resp.headers["location"]
    except Exception as e:
        r.err = f"checkout: {e}"
        return r
    r.t_checkout = time.perf_counter() - t0

    # 2) redirect is like "/mockpay/{psid}"
    parts = redirect_url.strip("/").split("/")
    psid = parts[1] if len(parts) >= 2 and parts[0] == "mockpay" else None
    if not psid:
        r.err = f"bad redirect: {redirect_url}"
        return r

    # 3) pay (simulate clicking the button on the MockPay page)
    t1 = time.perf_counter()
    try:
        resp = await client.post(f"{base}/mockpay/{psid}/emit",
                                 data={"t": "succeeded"}, timeout=30.0)
        if resp.status_code >= 400:
            r.err = f"emit HTTP {resp.status_code}"
            return r
    except Exception as e:
        r.err = f"emit: {e}"
        return r
    r.t_emit = time.perf_counter() - t1
    r.ok = True
    return r


async def run_load(base: str, total: int, concurrency: int,
                   http2: bool) -> tuple[Stats, List[Decimal]]:
    sem = asyncio.Semaphore(concurrency)
    stats = Stats()

    limits = httpx.Limits(
        max_keepalive_connections=concurrency, max_connections=concurrency
    )
    async with httpx.AsyncClient(
        limits=limits, http2=http2,
        headers={"User-Agent": "ApexStoreLoad/1.0"},
    ) as client:

        async def worker():
            async with sem:
                stats.add(await one_donation(client, base))

        await asyncio.gather(*(worker() for _ in range(total)))

        g = await client.get(f"{base}/api/top-donators", timeout=10.0)
        g.raise_for_status()
        observed = [Decimal(str(d["amount"])).quantize(Decimal("0.01"))
                    for d in g.json()["donators"]]

    return stats, observed


def main():
    ap = argparse.ArgumentParser(description="Apex Store load client")
    ap.add_argument("--base", default="http://localhost:8000",
                    help="Base URL of the app")
    ap.add_argument("--total", type=int, default=100,
                    help="Total donations to run")
    ap.add_argument("--concurrency", type=int, default=20,
                    help="Concurrent workers")
    ap.add_argument("--http2", action="store_true",
                    help="Enable HTTP/2 if server supports it")
    args = ap.parse_args()

    t_start = time.perf_counter()
    stats, observed = asyncio.run(run_load(
        base=args.base.rstrip("/"),
        total=args.total,
        concurrency=args.concurrency,
        http2=args.http2,
    ))
    elapsed = time.perf_counter() - t_start
    stats.print(elapsed, observed)


if __name__ == "__main__":
    main()
