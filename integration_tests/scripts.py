"""Run every live Telegram flow in a subprocess and summarise the results."""

import os
import subprocess
import sys

from dotenv import load_dotenv

FLOWS = [
    "integration_tests/telegram_bot/onboarding_flow.py",
]

REQUIRED_ENV_VARS = (
    "TELEGRAM_TEST_API_ID",
    "TELEGRAM_TEST_API_HASH",
    "TELEGRAM_TEST_PHONE",
    "TELEGRAM_BOT_USERNAME",
    "LEDGER_TEST_URL",
    "LEDGER_TEST_TOKEN",
)


def main() -> int:
    load_dotenv()
    missing = sorted(var for var in REQUIRED_ENV_VARS if not os.environ.get(var))
    if missing:
        print(f"Cannot run Telegram integration tests; missing env vars: {', '.join(missing)}")
        return 2

    failures = 0
    for flow in FLOWS:
        print(f"Running {flow}")
        returncode = subprocess.call([sys.executable, flow])
        print(f" - {flow}: {'OK' if returncode == 0 else f'FAIL ({returncode})'}")
        failures += returncode != 0
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
