from pathlib import Path

from fastapi import FastAPI
from fastapi.templating import Jinja2Templates

from consignment_ledger.config import settings
from consignment_ledger.logging_config import configure_logging
from consignment_ledger.routers import consignment
from consignment_ledger.security.csrf import install_csrf_cookie_middleware
from consignment_ledger.security.headers import install_security_headers
from consignment_ledger.services.document_service import format_brl

configure_logging()

app = FastAPI(title=settings.app_title)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
app.state.templates.env.filters['brl'] = format_brl

install_security_headers(app)
install_csrf_cookie_middleware(app)

app.include_router(consignment.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
