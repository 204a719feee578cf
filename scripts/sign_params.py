"""Sign a flat parameter set the way the gateway does.

Handy for building manual gateway requests or test notifications.
"""

import argparse
import json
import os

from flowpay.common.signing import sign, signed_form


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """Turn `key=value` arguments into a parameter mapping."""

    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"expected key=value, got {pair!r}")
        params[key] = value
    return params


def main() -> None:
    """Parse CLI args and print the signature (or the signed form as JSON)."""

    parser = argparse.ArgumentParser(description="Compute the HMAC-SHA256 signature of a parameter set.")
    parser.add_argument("pairs", nargs="+", help="Parameters as key=value")
    parser.add_argument("--secret", default=None, help="Shared secret (defaults to $FLOW_SECRET_KEY)")
    parser.add_argument("--form", action="store_true", help="Print the full signed form as JSON")
    args = parser.parse_args()

    secret = args.secret or os.getenv("FLOW_SECRET_KEY")
    if not secret:
        raise SystemExit("Provide --secret or set FLOW_SECRET_KEY")

    params = parse_pairs(args.pairs)
    if args.form:
        print(json.dumps(signed_form(params, secret.encode("utf-8")), indent=2))
    else:
        print(sign(params, secret.encode("utf-8")))


if __name__ == "__main__":
    main()
