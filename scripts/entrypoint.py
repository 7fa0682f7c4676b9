import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the notification service on the port Cloud Run assigns."""
  port = os.getenv("PORT", "8080")
  logger.info("Starting notification service on port %s", port)
  # Replace the current process so SIGTERM reaches uvicorn directly.
  os.execvp("uvicorn", ["uvicorn", "pregame.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"])


if __name__ == "__main__":
  main()
