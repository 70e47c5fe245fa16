"""Configuration management for Pubserve.

Supports TOML configuration format with auto-discovery. The loaded Config is
immutable and passed explicitly to every component that needs it.
"""

import ipaddress
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

CONFIG_FILENAME = "pubserve.toml"


class ConfigurationError(ValueError):
    """Configuration is malformed or refers to missing resources."""


@dataclass(frozen=True)
class HttpConfig:
    """Plain HTTP listener configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class HttpsConfig:
    """HTTPS listener configuration."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8443
    key: Path | None = None
    cert: Path | None = None


@dataclass(frozen=True)
class FilesConfig:
    """Public files configuration."""

    public_dir: Path = field(default_factory=lambda: Path("public"))
    not_found_page: Path = field(default_factory=lambda: Path("public/404.html"))


@dataclass(frozen=True)
class ListingConfig:
    """Directory listing configuration."""

    enabled: bool = False
    route: str = "/files"
    dir: Path = field(default_factory=lambda: Path("files"))
    show_hidden: bool = False


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-client rate limit. per_second = 0 disables limiting."""

    per_second: float = 0
    burst_size: int = 10


@dataclass(frozen=True)
class FilteringConfig:
    """Client filtering configuration."""

    ip_blacklist: tuple[str, ...] = ()
    ip_whitelist: tuple[str, ...] = ()
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    http: HttpConfig
    https: HttpsConfig
    files: FilesConfig
    listing: ListingConfig
    filtering: FilteringConfig
    config_path: Path | None = None

    @classmethod
    def load(cls, config_path: Path | None = None) -> "Config":
        """Load configuration from file.

        If config_path is provided, loads from that file.
        Otherwise, searches for pubserve.toml in current directory and parents.

        Args:
            config_path: Optional explicit path to config file

        Returns:
            Config instance with defaults for missing sections

        Raises:
            FileNotFoundError: If explicit config_path doesn't exist
            ConfigurationError: If configuration is invalid
        """
        if config_path is not None:
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return cls._load_from_file(config_path)

        discovered_path = cls._discover_config()
        if discovered_path is None:
            return cls._default()

        return cls._load_from_file(discovered_path)

    @classmethod
    def _discover_config(cls) -> Path | None:
        """Search for config file in current directory and parents.

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        while True:
            candidate = current / CONFIG_FILENAME
            if candidate.exists():
                return candidate
            parent = current.parent
            if parent == current:
                return None
            current = parent

    @classmethod
    def _default(cls) -> "Config":
        """Create config with all defaults, relative to the current directory."""
        cwd = Path.cwd()
        return cls(
            http=HttpConfig(),
            https=HttpsConfig(),
            files=FilesConfig(
                public_dir=cwd / "public",
                not_found_page=cwd / "public" / "404.html",
            ),
            listing=ListingConfig(dir=cwd / "files"),
            filtering=FilteringConfig(),
        )

    @classmethod
    def _load_from_file(cls, path: Path) -> "Config":
        """Load configuration from a specific file.

        Args:
            path: Path to TOML configuration file

        Returns:
            Config instance

        Raises:
            ConfigurationError: If configuration is invalid
        """
        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e

        config_dir = path.parent.absolute()

        return cls(
            http=cls._parse_http(data.get("http")),
            https=cls._parse_https(data.get("https"), config_dir),
            files=cls._parse_files(data, config_dir),
            listing=cls._parse_listing(data.get("listing"), config_dir),
            filtering=cls._parse_filtering(data.get("filtering")),
            config_path=path,
        )

    @classmethod
    def _parse_http(cls, data: object) -> HttpConfig:
        """Parse http configuration section.

        Args:
            data: Raw http section data

        Returns:
            HttpConfig instance
        """
        if data is None:
            return HttpConfig()

        if not isinstance(data, dict):
            raise ConfigurationError("http section must be a dictionary")

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigurationError("http.enabled must be a boolean")

        host = data.get("host", "127.0.0.1")
        if not isinstance(host, str):
            raise ConfigurationError("http.host must be a string")

        port = data.get("port", 8080)
        if not isinstance(port, int) or isinstance(port, bool):
            raise ConfigurationError("http.port must be an integer")

        return HttpConfig(enabled=enabled, host=host, port=port)

    @classmethod
    def _parse_https(cls, data: object, config_dir: Path) -> HttpsConfig:
        """Parse https configuration section.

        Args:
            data: Raw https section data
            config_dir: Directory containing config file (for relative paths)

        Returns:
            HttpsConfig instance
        """
        if data is None:
            return HttpsConfig()

        if not isinstance(data, dict):
            raise ConfigurationError("https section must be a dictionary")

        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ConfigurationError("https.enabled must be a boolean")

        host = data.get("host", "0.0.0.0")
        if not isinstance(host, str):
            raise ConfigurationError("https.host must be a string")

        port = data.get("port", 8443)
        if not isinstance(port, int) or isinstance(port, bool):
            raise ConfigurationError("https.port must be an integer")

        key = data.get("key")
        if key is not None and not isinstance(key, str):
            raise ConfigurationError("https.key must be a string")

        cert = data.get("cert")
        if cert is not None and not isinstance(cert, str):
            raise ConfigurationError("https.cert must be a string")

        return HttpsConfig(
            enabled=enabled,
            host=host,
            port=port,
            key=config_dir / key if key is not None else None,
            cert=config_dir / cert if cert is not None else None,
        )

    @classmethod
    def _parse_files(cls, data: dict[str, object], config_dir: Path) -> FilesConfig:
        """Parse the top-level public_dir and not_found_page keys.

        Args:
            data: Whole configuration document
            config_dir: Directory containing config file (for relative paths)

        Returns:
            FilesConfig instance
        """
        public_dir = data.get("public_dir", "public")
        if not isinstance(public_dir, str):
            raise ConfigurationError("public_dir must be a string")
        public_path = config_dir / public_dir

        not_found_page = data.get("not_found_page")
        if not_found_page is None:
            not_found_path = public_path / "404.html"
        elif isinstance(not_found_page, str):
            not_found_path = config_dir / not_found_page
        else:
            raise ConfigurationError("not_found_page must be a string")

        return FilesConfig(public_dir=public_path, not_found_page=not_found_path)

    @classmethod
    def _parse_listing(cls, data: object, config_dir: Path) -> ListingConfig:
        """Parse listing configuration section.

        Args:
            data: Raw listing section data
            config_dir: Directory containing config file (for relative paths)

        Returns:
            ListingConfig instance
        """
        if data is None:
            return ListingConfig(dir=config_dir / "files")

        if not isinstance(data, dict):
            raise ConfigurationError("listing section must be a dictionary")

        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ConfigurationError("listing.enabled must be a boolean")

        route = data.get("route", "/files")
        if not isinstance(route, str):
            raise ConfigurationError("listing.route must be a string")

        listing_dir = data.get("dir", "files")
        if not isinstance(listing_dir, str):
            raise ConfigurationError("listing.dir must be a string")

        show_hidden = data.get("show_hidden", False)
        if not isinstance(show_hidden, bool):
            raise ConfigurationError("listing.show_hidden must be a boolean")

        return ListingConfig(
            enabled=enabled,
            route=route,
            dir=config_dir / listing_dir,
            show_hidden=show_hidden,
        )

    @classmethod
    def _parse_filtering(cls, data: object) -> FilteringConfig:
        """Parse filtering configuration section.

        Args:
            data: Raw filtering section data

        Returns:
            FilteringConfig instance
        """
        if data is None:
            return FilteringConfig()

        if not isinstance(data, dict):
            raise ConfigurationError("filtering section must be a dictionary")

        blacklist = cls._parse_string_list(data.get("ip_blacklist", []), "ip_blacklist")
        whitelist = cls._parse_string_list(data.get("ip_whitelist", []), "ip_whitelist")
        rate_limit = cls._parse_rate_limit(data.get("rate_limit"))

        return FilteringConfig(
            ip_blacklist=blacklist,
            ip_whitelist=whitelist,
            rate_limit=rate_limit,
        )

    @classmethod
    def _parse_rate_limit(cls, data: object) -> RateLimitConfig:
        """Parse filtering.rate_limit configuration section.

        Args:
            data: Raw rate_limit section data

        Returns:
            RateLimitConfig instance
        """
        if data is None:
            return RateLimitConfig()

        if not isinstance(data, dict):
            raise ConfigurationError("filtering.rate_limit section must be a dictionary")

        per_second = data.get("per_second", 0)
        if not isinstance(per_second, int | float) or isinstance(per_second, bool):
            raise ConfigurationError("filtering.rate_limit.per_second must be a number")
        if per_second < 0:
            raise ConfigurationError("filtering.rate_limit.per_second must not be negative")

        burst_size = data.get("burst_size", 10)
        if not isinstance(burst_size, int) or isinstance(burst_size, bool):
            raise ConfigurationError("filtering.rate_limit.burst_size must be an integer")
        if burst_size < 1:
            raise ConfigurationError("filtering.rate_limit.burst_size must be at least 1")

        return RateLimitConfig(per_second=per_second, burst_size=burst_size)

    @staticmethod
    def _parse_string_list(data: object, name: str) -> tuple[str, ...]:
        if not isinstance(data, list):
            raise ConfigurationError(f"filtering.{name} must be a list")
        items: list[str] = []
        for item in data:
            if not isinstance(item, str):
                raise ConfigurationError(f"filtering.{name} items must be strings")
            items.append(item)
        return tuple(items)

    def validate(self) -> None:
        """Check that the configuration refers to usable resources.

        Run once at startup so a missing not-found page is reported before
        the first request rather than as an I/O error during one.

        Raises:
            ConfigurationError: If any check fails
        """
        if not self.http.enabled and not self.https.enabled:
            raise ConfigurationError("At least one of http or https must be enabled")

        if not self.files.public_dir.is_dir():
            raise ConfigurationError(f"Public directory not found: {self.files.public_dir}")

        if not self.files.not_found_page.is_file():
            raise ConfigurationError(f"Not found page not found: {self.files.not_found_page}")

        if self.https.enabled:
            if self.https.key is None or self.https.cert is None:
                raise ConfigurationError("https.key and https.cert are required for HTTPS")
            if not self.https.key.is_file():
                raise ConfigurationError(f"HTTPS key not found: {self.https.key}")
            if not self.https.cert.is_file():
                raise ConfigurationError(f"HTTPS certificate not found: {self.https.cert}")

        if self.listing.enabled:
            route = self.listing.route
            if not route.startswith("/") or route.rstrip("/") == "":
                raise ConfigurationError(
                    f"listing.route must start with '/' and not be '/': {route!r}",
                )
            if not self.listing.dir.is_dir():
                raise ConfigurationError(f"Listing directory not found: {self.listing.dir}")

        for entry in (*self.filtering.ip_whitelist, *self.filtering.ip_blacklist):
            try:
                ipaddress.ip_network(entry.strip(), strict=False)
            except ValueError as e:
                raise ConfigurationError(f"Invalid IP address or network: {entry!r}") from e

    def with_overrides(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        public_dir: Path | None = None,
        not_found_page: Path | None = None,
        listing_enabled: bool | None = None,
    ) -> "Config":
        """Create a new Config with CLI overrides applied.

        Only non-None values override the existing config. This follows
        the immutable pattern - this Config is not modified. A not-found page
        left at its default public_dir/404.html follows a public_dir override.

        Args:
            host: Override http.host
            port: Override http.port
            public_dir: Override public_dir
            not_found_page: Override not_found_page
            listing_enabled: Override listing.enabled

        Returns:
            New Config instance with overrides applied
        """
        http = self.http
        if host is not None or port is not None:
            http = replace(
                self.http,
                host=host if host is not None else self.http.host,
                port=port if port is not None else self.http.port,
            )

        files = self.files
        if not_found_page is None and public_dir is not None:
            if self.files.not_found_page == self.files.public_dir / "404.html":
                not_found_page = public_dir / "404.html"
        if public_dir is not None or not_found_page is not None:
            files = replace(
                self.files,
                public_dir=public_dir if public_dir is not None else self.files.public_dir,
                not_found_page=(
                    not_found_page if not_found_page is not None else self.files.not_found_page
                ),
            )

        listing = self.listing
        if listing_enabled is not None:
            listing = replace(self.listing, enabled=listing_enabled)

        return replace(self, http=http, files=files, listing=listing)
