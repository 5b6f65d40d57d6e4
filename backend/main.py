# backend/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import init_db

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Import routerów
from routes.cart import router as cart_router
from routes.checkout import router as checkout_router
from routes.orders import router as orders_router

# Inicjalizacja
init_db()

app = FastAPI(title="GreenSpace Marketplace API", version="1.0.0")

# CORS Configuration
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173"
]

if settings.FRONTEND_URL:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rejestracja routerów
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)

@app.get("/")
def read_root():
    return {"message": "GreenSpace Marketplace API działa!"}
