# assist_gateway/main.py
import logging
from fastapi import FastAPI
from assist_gateway.core.config import settings
from assist_gateway.api.errors import register_exception_handlers
from assist_gateway.api.v1.api import router as api_router

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    debug=settings.DEBUG,
)

# Every response, errors included, carries the origin policy headers
register_exception_handlers(app)


@app.get("/health")
async def health_check():
    logger.info("Health check endpoint hit")
    return {"status": "healthy"}


app.include_router(api_router, prefix=settings.API_V1_STR)
