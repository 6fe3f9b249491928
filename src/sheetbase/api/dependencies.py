import json
import logging

from fastapi import HTTPException, Request, status

from ..core.exceptions import (
    ColumnNotFoundError,
    DataStoreError,
    ImportAbortedError,
    StorageFailureError,
    TableExistsError,
    TableNotFoundError,
)
from ..schemas.table import QueryOptions
from ..services.table_store import TableStore

LOGGER = logging.getLogger(__name__)

FILTER_PREFIX = "filter."


async def get_table_store(request: Request) -> TableStore:
    return request.app.state.table_store


def http_error(exc: DataStoreError) -> HTTPException:
    """Translate an engine error into an HTTP error carrying its structured body."""
    if isinstance(exc, (TableNotFoundError, ColumnNotFoundError)):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, TableExistsError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ImportAbortedError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, StorageFailureError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    if status_code >= 500:
        LOGGER.error("Request failed: %s", exc, exc_info=exc)
    else:
        LOGGER.warning("Request rejected (%s): %s", exc.code, exc.message)
    return HTTPException(status_code=status_code, detail=exc.to_dict())


def query_options_from_request(
    request: Request,
    search: str,
    page: int,
    size: int,
    sort_by: str,
    desc: bool,
) -> QueryOptions:
    """Build query options; column filters arrive as ``filter.<column>`` parameters."""
    filters = {
        key[len(FILTER_PREFIX):]: value
        for key, value in request.query_params.items()
        if key.startswith(FILTER_PREFIX) and len(key) > len(FILTER_PREFIX)
    }
    return QueryOptions(search=search, filters=filters, page=page, page_size=size, sort_by=sort_by, sort_desc=desc)


def parse_aliases(raw: str | None) -> dict[str, str]:
    """Parse the JSON object form field mapping import headers to columns."""
    if not raw or not raw.strip():
        return {}
    try:
        aliases = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"aliases is not valid JSON: {e}") from e
    if not isinstance(aliases, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="aliases must be a JSON object")
    return {str(key): str(value) for key, value in aliases.items()}
