from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from caseflow.errors import WorkflowError

STATUS_BY_KIND = {
    'validation_error': 400,
    'not_found': 404,
    'conflict_error': 409,
    'allocation_error': 503,
    'persistence_error': 500,
}


def error_response(exc: WorkflowError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 500),
        content={'success': False, 'error': exc.to_dict()},
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        return error_response(exc)
