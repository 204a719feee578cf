"""Fetch and print the status JSON for one order."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for status checks."""

    parser = argparse.ArgumentParser(description="Query the order status endpoint.")
    parser.add_argument("order_id")
    parser.add_argument("--app-url", default="http://localhost:8000")
    parser.add_argument("--token", default=None)
    args = parser.parse_args()

    params = {"token": args.token} if args.token else None
    resp = httpx.get(f"{args.app_url}/api/paymentStatus/{args.order_id}", params=params, timeout=10.0)
    print(json.dumps(resp.json(), indent=2))
    if resp.status_code >= 400:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
