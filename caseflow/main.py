from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from caseflow.errors_http import install_error_handlers
from caseflow.logging_config import configure_logging
from caseflow.routers import workflow

configure_logging()

app = FastAPI(title='Caseflow')

install_error_handlers(app)

app.include_router(workflow.router)


@app.get('/health', response_class=PlainTextResponse)
def health() -> str:
    return 'ok'
