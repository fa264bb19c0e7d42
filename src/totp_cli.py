import argparse
import os
import time

import pyotp


def current_code(secret: str, for_time: float | None = None) -> str:
    totp = pyotp.TOTP(secret)
    return totp.at(for_time) if for_time is not None else totp.now()


def seconds_remaining(interval: int = 30, now: float | None = None) -> int:
    current = time.time() if now is None else now
    return interval - int(current) % interval


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print the current one-time login code")
    parser.add_argument("secret", nargs="?", help="Base32 TOTP secret (defaults to TOTP_SECRET)")
    args = parser.parse_args(argv)

    secret = args.secret or os.environ.get("TOTP_SECRET", "")
    if not secret:
        print("Error: No secret provided.")
        return 1
    print(f"{current_code(secret)} (valid {seconds_remaining()}s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
