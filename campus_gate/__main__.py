# =======================================================================================
# campus_gate/__main__.py - Development Server
# =======================================================================================
import uvicorn
from .config import config
from .main import create_app

if __name__ == "__main__":
    uvicorn.run(create_app(), host=config.API_HOST, port=config.API_PORT)
