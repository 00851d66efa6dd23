import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.core import config
from backend.core.errors import AppError, InternalError
from backend.core.logging import setup_logging
from backend.database import Base, engine
from backend.models import category, chapter, course, level, refresh_token, user  # noqa: F401
from backend.routes import auth_routes, course_routes

setup_logging(config.LOG_LEVEL)

app = FastAPI(title='Course Platform API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def error_response(error: AppError) -> JSONResponse:
    content = {'success': False, 'message': error.message}
    if error.errors:
        content['errors'] = error.errors
    return JSONResponse(status_code=error.status_code, content=content)


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            'field': '.'.join(str(part) for part in error['loc'] if part not in ('body', 'query', 'path', 'cookie')),
            'message': error['msg'],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={'success': False, 'message': 'Validation failed', 'errors': errors},
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = 'Route not found' if exc.status_code == 404 else exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={'success': False, 'message': message},
        headers=exc.headers,
    )


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error on %s %s', request.method, request.url.path)
    return error_response(InternalError())


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return error_response(InternalError())


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/health')
def health():
    return {'success': True, 'message': 'Server is running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(course_routes.router, prefix='/courses')
