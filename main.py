#!/usr/bin/env python3
"""
Main entry point for Scheduled Quiz Bot
"""

import asyncio

from bot import main


def run() -> None:
    try:
        asyncio.run(main())
    except RuntimeError as e:
        if "Event loop is closed" in str(e):
            print(f"Event loop already closed: {e}")
        else:
            raise
    except (KeyboardInterrupt, SystemExit):
        print("Program interrupted.")
    finally:
        print("Program terminated.")


if __name__ == "__main__":
    run()
