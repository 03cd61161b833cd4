from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

BANNER = "LinkDesk signaling server is running"

ANSWERED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

router = APIRouter()


@router.api_route("/health", methods=ANSWERED_METHODS, response_class=PlainTextResponse)
async def health():
    return "ok"


# Any other path answers 200 so a browser hitting the host sees it is up
@router.api_route(
    "/{path:path}",
    methods=ANSWERED_METHODS,
    response_class=PlainTextResponse,
    include_in_schema=False,
)
async def homepage(path: str):
    return BANNER
