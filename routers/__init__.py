from .assignments_api import router as assignments_api_router
from .catalog_api import router as catalog_api_router
from .expenditures_api import router as expenditures_api_router
from .ledger_api import router as ledger_api_router
from .lots_api import router as lots_api_router
from .purchases_api import router as purchases_api_router
from .transfers_api import router as transfers_api_router

ALL_ROUTERS = (
    catalog_api_router,
    lots_api_router,
    purchases_api_router,
    transfers_api_router,
    assignments_api_router,
    expenditures_api_router,
    ledger_api_router,
)
