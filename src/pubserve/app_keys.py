"""Application keys for type-safe app configuration access."""

from aiohttp import web

from pubserve.config import Config
from pubserve.core.listing import DirectoryListingRenderer
from pubserve.core.resolver import PathResolver

config_key = web.AppKey("config", Config)
resolver_key = web.AppKey("resolver", PathResolver)
listing_key = web.AppKey("listing", DirectoryListingRenderer)
