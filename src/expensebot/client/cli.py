"""CLI client for the expensebot API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from expensebot.common import (
    AnsiColors,
    colored_print,
)
from expensebot.config import settings

logger = logging.getLogger(__name__)

_OUTCOME_COLORS = {
    "answered": AnsiColors.YELLOW,
    "exhausted": AnsiColors.BLUE,
    "tool_unavailable": AnsiColors.RED,
    "faulted": AnsiColors.RED,
}


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """Make a POST request to the API and return the response with retries."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.post(api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as e:
            # The API thread may still be starting: retry with exponential backoff
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            error_msg = f"Error connecting to API: {e}"
        except httpx.HTTPStatusError as e:
            error_msg = f"API error {e.response.status_code}: {e.response.text}"
        except httpx.HTTPError as e:
            error_msg = f"Error connecting to API: {e}"

        logger.error("API request error: %s", error_msg)
        colored_print(error_msg, AnsiColors.RED)
        return {"reply": error_msg}

    return {"reply": f"Failed to connect to API after {max_retries} attempts"}


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    session_response = call_api("/sessions", {})
    session_id = session_response.get("session_id")

    if not session_id:
        colored_print("⚠️ Failed to create a session", AnsiColors.RED)
        return

    colored_print(
        "\n💸 expensebot shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN
    )
    colored_print(session_response.get("welcome", ""), AnsiColors.YELLOW)
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in {"exit", "quit"}:
            break

        response = call_api("/agent", {"message": user_msg, "session_id": session_id})

        for observation in response.get("observations") or []:
            colored_print(f"[{observation['tool_name']}] {observation['result']}", AnsiColors.GREY)

        color = _OUTCOME_COLORS.get(response.get("outcome", ""), AnsiColors.YELLOW)
        colored_print(response.get("reply", "No response from API"), color)


if __name__ == "__main__":
    run_cli()
