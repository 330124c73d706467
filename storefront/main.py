import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .database import engine
from .models import Base
from .routers import admin, cart, catalog, checkout, colours, webhooks

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Gecko Storefront")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.PUBLIC_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(webhooks.router)
app.include_router(colours.router)
app.include_router(admin.router)


@app.get("/")
def root():
    return {"service": "storefront", "status": "running"}


@app.get("/health")
def health():
    return {"status": "ok"}
