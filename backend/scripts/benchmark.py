"""
Load benchmark for the chat API, in the spirit of Apache Bench (ab).

Targets:
- classify (default): POST /api/routing/classify, no provider calls
- craft: POST /api/content/craft over a canned article
- chat: POST /api/conversations/{id}/messages against one fresh conversation
  (calls real providers and consumes credits when X-User-ID is set)

Usage: python scripts/benchmark.py http://localhost:8000 [--target=classify] [-n 1000] [-c 10]
"""
import asyncio
import httpx
import time
import sys
import argparse
from typing import Any, Dict, Tuple
from statistics import mean, median, stdev

DEFAULT_QUERY = "research current SEO trends in the USA"

CRAFT_SAMPLE = (
    "<h1>Heat Pumps for Homeowners</h1>\n"
    "<p>It is important to note that heat pumps are really very efficient.</p>\n"
    "<p>Studies show that 40% of households could cut heating bills.</p>"
)


async def make_request(client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> Tuple[float, int, bool]:
    """Send a single POST and return (elapsed, status, ok)."""
    start = time.time()
    try:
        response = await client.post(url, json=payload, timeout=120.0)
        elapsed = time.time() - start
        return (elapsed, response.status_code, response.status_code < 400)
    except httpx.HTTPError as e:
        elapsed = time.time() - start
        print(f"Request failed: {e}", file=sys.stderr)
        return (elapsed, 0, False)


async def resolve_target(client: httpx.AsyncClient, base_url: str, target: str, query: str) -> Tuple[str, Dict[str, Any]]:
    if target == "craft":
        return f"{base_url}/api/content/craft", {"content": CRAFT_SAMPLE, "focus_term": "heat pumps"}
    if target == "chat":
        response = await client.post(f"{base_url}/api/conversations", json={"title": "benchmark"})
        response.raise_for_status()
        conversation_id = response.json()["id"]
        return f"{base_url}/api/conversations/{conversation_id}/messages", {"content": query}
    return f"{base_url}/api/routing/classify", {"query": query}


async def run_benchmark(base_url: str, target: str, query: str, num_requests: int, concurrency: int):
    """Run benchmark with specified parameters."""
    async with httpx.AsyncClient() as client:
        url, payload = await resolve_target(client, base_url.rstrip("/"), target, query)
        print(f"Benchmarking POST {url}")
        print(f"Requests: {num_requests}, Concurrency: {concurrency}\n")

        semaphore = asyncio.Semaphore(concurrency)

        async def bounded_request():
            async with semaphore:
                return await make_request(client, url, payload)

        start_time = time.time()
        results = await asyncio.gather(*(bounded_request() for _ in range(num_requests)))
        total_time = time.time() - start_time

    times = [r[0] for r in results]
    status_codes = [r[1] for r in results]
    successes = [r[2] for r in results]

    successful = sum(successes)
    failed = num_requests - successful

    successful_times = [t for t, s in zip(times, successes) if s]
    if successful_times:
        avg_time = mean(successful_times)
        median_time = median(successful_times)
        min_time = min(successful_times)
        max_time = max(successful_times)
        stddev_time = stdev(successful_times) if len(successful_times) > 1 else 0.0
    else:
        avg_time = median_time = min_time = max_time = stddev_time = 0.0

    print("=" * 60)
    print("Benchmark Results")
    print("=" * 60)
    print(f"Total requests:      {num_requests}")
    print(f"Successful requests: {successful}")
    print(f"Failed requests:     {failed}")
    print(f"Total time:          {total_time:.3f} seconds")
    print(f"Requests per second: {num_requests / total_time:.2f} [#/sec]")
    print(f"Time per request:    {total_time / num_requests * 1000:.2f} [ms] (mean)")
    if successful_times:
        print(f"Time per request:    {avg_time * 1000:.2f} [ms] (mean, across all concurrent requests)")
        print(f"Time per request:    {median_time * 1000:.2f} [ms] (median)")
        print(f"Min request time:    {min_time * 1000:.2f} [ms]")
        print(f"Max request time:    {max_time * 1000:.2f} [ms]")
        print(f"Std deviation:       {stddev_time * 1000:.2f} [ms]")

    # 429s are expected on the chat target once the per-IP limit is reached
    status_counts: Dict[int, int] = {}
    for code in status_codes:
        status_counts[code] = status_counts.get(code, 0) + 1

    print("\nStatus code breakdown:")
    for code in sorted(status_counts.keys()):
        print(f"  {code}: {status_counts[code]}")


def main():
    parser = argparse.ArgumentParser(description="Benchmark the chat API")
    parser.add_argument("base_url", help="API base URL, e.g. http://localhost:8000")
    parser.add_argument("--target", choices=["classify", "craft", "chat"], default="classify")
    parser.add_argument("--query", default=DEFAULT_QUERY, help="Query text for classify/chat targets")
    parser.add_argument("-n", "--requests", type=int, default=1000, help="Number of requests (default: 1000)")
    parser.add_argument("-c", "--concurrency", type=int, default=10, help="Concurrency level (default: 10)")

    args = parser.parse_args()

    asyncio.run(run_benchmark(args.base_url, args.target, args.query, args.requests, args.concurrency))


if __name__ == "__main__":
    main()
