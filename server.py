# Deploy: set environment variables (or a .env file) and run 'uvicorn server:app --host=0.0.0.0 --port=8000'
import logging

from dotenv import load_dotenv

from presence_board.api import create_app
from presence_board.config import load_settings

load_dotenv()

logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler()])

app = create_app(load_settings())

__all__ = ["app"]
