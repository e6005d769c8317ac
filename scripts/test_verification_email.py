#!/usr/bin/env python3
"""Send a sample verification email and print the result. Use to debug email delivery.
Usage: from project root, run:
  python scripts/test_verification_email.py you@example.com
"""
import os
import sys

# Project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def main():
    if len(sys.argv) < 2 or not sys.argv[1].strip():
        print("Usage: python scripts/test_verification_email.py <email>")
        return 1
    to_email = sys.argv[1].strip()
    from pathlib import Path
    from trackroster.config import _env_path, get_settings
    from trackroster.services.notifications import send_verification_email

    s = get_settings()
    if s.mailgun_api_key and s.mailgun_domain:
        transport = f"Mailgun ({s.mailgun_domain})"
    elif s.resend_api_key:
        transport = "Resend"
    elif s.sendgrid_api_key:
        transport = "SendGrid"
    else:
        transport = "(none configured)"
    print("TrackRoster verification email test")
    print(f"  .env path: {_env_path} (exists: {Path(_env_path).exists()})")
    print(f"  Transport: {transport}")
    print(f"  Sending sample code to: {to_email}")
    print("-" * 50)

    ok = send_verification_email(to_email, "123456")
    print("-" * 50)
    if ok:
        print("Result: SUCCESS - the provider accepted the message. If it does not arrive, check spam.")
    else:
        print("Result: FAILED - see the [Email]/[Mailgun]/[Resend]/[SendGrid] log lines above.")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
