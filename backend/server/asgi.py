"""
ASGI entry point for the relay server.

    uvicorn server.asgi:app --port 5000

Environment (including .env) is read once, here.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()
