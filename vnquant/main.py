import logging
import os

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vnquant.api.routes import instruments

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

origins = [origin for origin in os.getenv("CORS_ORIGINS", "").split(",") if origin]

app = FastAPI(title="vnquant")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": "vnquant market data API"}


# DATABASE ROUTES --------------------------------------------------------------------------------------
app.include_router(instruments.router)


# DB Start up after deploying
@app.on_event("startup")
async def run_migrations():
    if os.getenv("RUN_MIGRATIONS_ON_STARTUP", "1") != "1":
        return
    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, "head")
