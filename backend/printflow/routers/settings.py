"""Monday.com integration settings (admin only)."""
from fastapi import APIRouter, Depends
import logging

from ..auth import CurrentUser, PermissionChecker
from ..document_store import DocumentStore, get_document_store
from ..domain_errors import DomainError, MondayApiError
from ..schemas import DesignerBoardLink, MondayConnectionTest, MondaySettingsUpdate
from ..services.monday_client import MondayClient
from ..services.settings_store import get_monday_settings, save_monday_settings
from ..use_cases.monday_sync import USERS, probe_monday_connection

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)

require_admin = PermissionChecker("canManageIntegrations")


@router.get("/monday")
def read_monday_settings(
    current_user: CurrentUser = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    return get_monday_settings(store).to_public_dict()


@router.put("/monday")
def write_monday_settings(
    changes: MondaySettingsUpdate,
    current_user: CurrentUser = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    """Merge changes into the settings document; takes effect on the next sync."""
    saved = save_monday_settings(store, changes.to_document(), user_id=current_user.id)
    logger.info(f"⚙️ Monday settings updated by {current_user.id}")
    return saved.to_public_dict()


@router.post("/monday/test")
def check_monday_connection(
    probe: MondayConnectionTest,
    current_user: CurrentUser = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    """Check a token (the given one or the saved one) against the configured boards."""
    monday_settings = get_monday_settings(store)
    api_token = probe.api_token or monday_settings.api_token
    if not api_token:
        raise DomainError(
            code="MONDAY_TOKEN_MISSING",
            http_status=400,
            message="No Monday API token configured",
        )
    board_ids = [b for b in (monday_settings.design_board_id, monday_settings.production_board_id) if b]
    return probe_monday_connection(api_token=api_token, board_ids=board_ids)


@router.get("/monday/boards/{board_id}/columns")
def list_board_columns(
    board_id: str,
    current_user: CurrentUser = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    """Column ids of a board, for mapping the status/order/date columns."""
    monday_settings = get_monday_settings(store)
    if not monday_settings.api_token:
        raise DomainError(
            code="MONDAY_TOKEN_MISSING",
            http_status=400,
            message="No Monday API token configured",
        )
    try:
        return MondayClient(monday_settings.api_token).board_columns(board_id)
    except MondayApiError as e:
        raise DomainError(
            code="MONDAY_API_ERROR",
            http_status=502,
            message=str(e),
            details={"boardId": board_id},
        )


@router.put("/users/{user_id}/monday-board")
def link_designer_board(
    user_id: str,
    link: DesignerBoardLink,
    current_user: CurrentUser = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    """Route new design-board items of this designer to a personal board."""
    store.set(USERS, user_id, {"mondayBoardId": link.monday_board_id}, merge=True)
    return {"userId": user_id, "mondayBoardId": link.monday_board_id}
