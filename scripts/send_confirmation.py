"""Post a signed payment confirmation to a running checkout service.

Useful for manual duplicate-delivery and tamper testing.
"""

import argparse
import os

import httpx

from flowpay.common.signing import signed_form


def main() -> None:
    """Parse CLI args, sign the notification, and post it."""

    parser = argparse.ArgumentParser(description="Send a signed gateway confirmation.")
    parser.add_argument("--app-url", default="http://localhost:8000")
    parser.add_argument("--order-id", required=True)
    parser.add_argument("--status", default="1", help="Gateway status code (1 approved, 2 rejected, 3 pending)")
    parser.add_argument("--token", default=None)
    parser.add_argument("--secret", default=None, help="Shared secret (defaults to $FLOW_SECRET_KEY)")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same notification N times")
    parser.add_argument("--tamper", action="store_true", help="Change status after signing")
    args = parser.parse_args()

    secret = args.secret or os.getenv("FLOW_SECRET_KEY")
    if not secret:
        raise SystemExit("Provide --secret or set FLOW_SECRET_KEY")

    params = {"commerceOrder": args.order_id, "status": args.status}
    if args.token:
        params["token"] = args.token
    form = signed_form(params, secret.encode("utf-8"))
    if args.tamper:
        form["status"] = "2" if args.status == "1" else "1"

    for attempt in range(1, args.repeat + 1):
        resp = httpx.post(f"{args.app_url}/api/paymentConfirmation", data=form, timeout=10.0)
        print(f"attempt={attempt} status_code={resp.status_code} body={resp.text!r}")


if __name__ == "__main__":
    main()
