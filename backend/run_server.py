# run_server.py
import uvicorn
from deliverytracker.core.config import settings
from deliverytracker.main import app

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="127.0.0.1",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        # uvicorn's own records reach loguru through the intercept handler.
        log_config=None,
    )
