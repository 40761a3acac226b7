"""
Route table for the bad/good practices demo site.
"""
import logging

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import FileResponse, PlainTextResponse
from starlette.routing import Route

from .config import Settings
from .negotiation import Negotiator
from .responses import cache_control_for, negotiated_file_response

logger = logging.getLogger(__name__)


async def not_found(request: Request, exc: HTTPException) -> PlainTextResponse:
    logger.info("route not found: %s", request.url.path, extra={"path": request.url.path})
    return PlainTextResponse("Page not found", status_code=404)


def create_app(settings: Settings | None = None) -> Starlette:
    settings = settings or Settings()
    site_dir = settings.site_dir
    negotiator = Negotiator(settings.negotiator_config())

    def page(filename: str, good: bool):
        path = site_dir / filename
        cache_control = cache_control_for("text/html", good)

        async def endpoint(request: Request):
            if not path.is_file():
                raise HTTPException(status_code=404)
            return FileResponse(
                path, media_type="text/html", headers={"Cache-Control": cache_control}
            )

        return endpoint

    def asset(filename: str):
        async def endpoint(request: Request):
            return await negotiated_file_response(
                request, site_dir / filename, negotiator=negotiator
            )

        return endpoint

    async def font(request: Request):
        name = request.path_params["name"]
        return await negotiated_file_response(
            request,
            site_dir / "assets" / "fonts" / f"{name}.ttf",
            is_font=True,
            negotiator=negotiator,
        )

    routes = [
        Route("/", page("bad.html", good=False)),
        Route("/bad", page("bad.html", good=False)),
        Route("/bad.html", page("bad.html", good=False)),
        Route("/good", page("good.html", good=True)),
        Route("/good.html", page("good.html", good=True)),
        Route("/styles.css", asset("styles.css")),
        Route("/app.js", asset("app.js")),
        Route("/assets/fonts/{name}.ttf", font),
    ]
    return Starlette(routes=routes, exception_handlers={404: not_found})
