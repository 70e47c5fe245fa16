"""aiohttp server for Pubserve.

Application factory, route registration and listener startup. Blocking
filesystem work (resolution, directory listing) runs on the loop's default
executor so slow storage does not stall other requests.
"""

import asyncio
import logging
import ssl
from pathlib import Path
from urllib.parse import quote

from aiohttp import web

from pubserve.app_keys import config_key, listing_key, resolver_key
from pubserve.config import Config, ConfigurationError, HttpsConfig
from pubserve.core.errors import ResourceAccessError
from pubserve.core.listing import CONTENT_TYPE, DirectoryListingRenderer, hide_dotfiles, show_all
from pubserve.core.resolver import PathResolver, has_traversal, is_regular_file
from pubserve.core.types import ResolvedTarget
from pubserve.filtering import create_gates, filtering_middleware
from pubserve.request import client_identifier

logger = logging.getLogger(__name__)


def ensure_readable(path: Path) -> Path:
    """Open and close a file so access failures surface before streaming.

    Args:
        path: File about to be streamed

    Returns:
        The same path

    Raises:
        ResourceAccessError: If the file is gone or cannot be read
    """
    try:
        with open(path, "rb"):
            pass
    except OSError as e:
        raise ResourceAccessError(path, e) from e
    return path


def _resolve_readable(resolver: PathResolver, path: str, client: str) -> ResolvedTarget:
    target = resolver.resolve(path, client)
    ensure_readable(target.path)
    return target


async def resolve_request(request: web.Request) -> ResolvedTarget:
    """Resolve the request's path with the application's resolver.

    Args:
        request: aiohttp request matched by the catch-all route

    Returns:
        File to stream (a match or the not-found page)

    Raises:
        ResourceAccessError: If the filesystem could not be inspected or the
            resolved file cannot be opened
    """
    path = request.match_info.get("path", "")
    client = client_identifier(request)
    resolver = request.app[resolver_key]
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _resolve_readable, resolver, path, client)


async def serve_file(request: web.Request) -> web.FileResponse:
    """Serve the file a request path resolves to.

    The not-found page is served with the regular success status.
    """
    try:
        target = await resolve_request(request)
    except ResourceAccessError as e:
        logger.error(f"[{client_identifier(request)}] Access error: {e}")
        raise web.HTTPInternalServerError() from e
    return web.FileResponse(target.path)


async def redirect_with_slash(request: web.Request) -> web.Response:
    """Redirect a single-segment path to its trailing-slash form.

    Relative links inside an index page then resolve below the segment.
    """
    sub_path = request.match_info["sub_path"]
    raise web.HTTPFound(quote(sub_path, safe="") + "/")


def _locate_listing_target(
    renderer: DirectoryListingRenderer,
    listing_dir: Path,
    rel_path: str,
    url_prefix: str,
) -> str | Path | None:
    """Render a directory or locate a file below the listing root.

    Returns:
        HTML document for a directory, Path for a regular file, None if absent
    """
    target = f"{listing_dir}/{rel_path}"
    if is_regular_file(target.rstrip("/")):
        return ensure_readable(Path(target))
    try:
        is_dir = Path(target).is_dir()
    except OSError as e:
        raise ResourceAccessError(Path(target), e) from e
    if is_dir:
        return renderer.render(Path(target), url_prefix)
    return None


async def serve_listing(request: web.Request) -> web.StreamResponse:
    """Serve a directory listing, or a file, below the listing route."""
    config = request.app[config_key]
    renderer = request.app[listing_key]
    rel_path = request.match_info.get("path", "")
    client = client_identifier(request)

    if has_traversal(rel_path):
        logger.warning(f"[{client}] Not Safe: {rel_path}")
        raise web.HTTPNotFound()

    segments = [s for s in rel_path.split("/") if s]
    if not config.listing.show_hidden and any(s.startswith(".") for s in segments):
        raise web.HTTPNotFound()

    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(
            None,
            _locate_listing_target,
            renderer,
            config.listing.dir,
            rel_path,
            request.path,
        )
    except ResourceAccessError as e:
        logger.error(f"[{client}] Access error: {e}")
        raise web.HTTPInternalServerError() from e

    if result is None:
        logger.info(f"[{client}] File not found: {config.listing.dir / rel_path}")
        raise web.HTTPNotFound()

    logger.info(f"[{client}] Serving: {config.listing.dir / rel_path}")
    if isinstance(result, Path):
        return web.FileResponse(result)
    return web.Response(body=result.encode("utf-8"), headers={"Content-Type": CONTENT_TYPE})


def create_listing_routes(route: str) -> list[web.RouteDef]:
    base = route.rstrip("/")
    return [
        web.get(base, serve_listing),
        web.get(base + "/{path:.*}", serve_listing),
    ]


def create_file_routes() -> list[web.RouteDef]:
    return [
        web.get("/{sub_path:[^/]+}", redirect_with_slash),
        web.get("/{path:.*}", serve_file),
    ]


def create_app(config: Config) -> web.Application:
    """Create aiohttp application.

    Args:
        config: Application configuration

    Returns:
        Configured aiohttp application
    """
    gates = create_gates(config.filtering)
    middlewares = [filtering_middleware(gates)] if gates else []
    app = web.Application(middlewares=middlewares)

    app[config_key] = config
    app[resolver_key] = PathResolver(config.files.public_dir, config.files.not_found_page)
    app[listing_key] = DirectoryListingRenderer(
        show_all if config.listing.show_hidden else hide_dotfiles,
    )

    # Listing routes must be registered first to take precedence over file routes
    if config.listing.enabled:
        app.router.add_routes(create_listing_routes(config.listing.route))

    app.router.add_routes(create_file_routes())

    return app


def create_ssl_context(https: HttpsConfig) -> ssl.SSLContext:
    """Build the server-side TLS context for the HTTPS listener.

    Raises:
        ConfigurationError: If key or certificate is missing or cannot be loaded
    """
    if https.key is None or https.cert is None:
        raise ConfigurationError("Both https.key and https.cert are required for HTTPS")
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        context.load_cert_chain(certfile=https.cert, keyfile=https.key)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(
            f"Loading certificate {https.cert} or key {https.key} failed: {e}",
        ) from e
    return context


async def serve(config: Config) -> None:
    """Start the enabled listeners and serve until cancelled.

    Args:
        config: Validated application configuration
    """
    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        sites: list[web.TCPSite] = []
        if config.https.enabled:
            sites.append(
                web.TCPSite(
                    runner,
                    config.https.host,
                    config.https.port,
                    ssl_context=create_ssl_context(config.https),
                ),
            )
        if config.http.enabled:
            sites.append(web.TCPSite(runner, config.http.host, config.http.port))

        if not sites:
            logger.warning("No server started")
            return

        for site in sites:
            await site.start()
            logger.info(f"Listening on {site.name}")

        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def run_server(config: Config) -> None:
    """Run the server until interrupted.

    Args:
        config: Validated application configuration
    """
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Server stopped")
