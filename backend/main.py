from fastapi import FastAPI, Request
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from core.config import settings
from core.errors import InventoryError
from core.logger import get_logger, setup_logging
from db.database import create_db_and_tables, get_engine
from routers.orders import router as orders_router
from routers.products import router as products_router
from routers.transfers import router as transfers_router
from routers.users import router as users_router
from routers.warehouses import router as warehouses_router, stocks_router
from services.allocation import policy_from_settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    policy_from_settings()
    await create_db_and_tables(get_engine())
    logger.info("startup_complete", allocation_policy=settings.allocation_policy)
    yield
    await get_engine().dispose()


app = FastAPI(
    title="Inventory API",
    description="Orders, warehouse stock and stock transfers",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(products_router, prefix="/api/products", tags=["products"])
app.include_router(orders_router, prefix="/api/orders", tags=["orders"])
app.include_router(warehouses_router, prefix="/api/warehouses", tags=["warehouses"])
app.include_router(stocks_router, prefix="/api/stocks", tags=["stocks"])
app.include_router(transfers_router, prefix="/api/transfers", tags=["transfers"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
