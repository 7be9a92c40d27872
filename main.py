#main.py
from pathlib import Path
from dotenv import load_dotenv
load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

import logging

from fastapi import FastAPI

from api.geolocation import router as geolocation_router
from settings import DEBUG

logging.basicConfig(level=logging.DEBUG if DEBUG else logging.INFO)

app = FastAPI(title="Job Directory Edge")
app.include_router(geolocation_router)


@app.get("/")
def health():
    return {"status": "ok"}
