from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    # Platform backend + auth provider
    backend_base_url: str = "http://localhost:3000"
    auth_base_url: str = "http://localhost:3000"

    # OneMap (postal code -> address)
    onemap_token_url: str = "https://www.onemap.gov.sg/api/auth/post/getToken"
    onemap_search_url: str = "https://www.onemap.gov.sg/api/common/elastic/search"
    onemap_email: str = ""
    onemap_password: str = ""

    # Google geocoding (address -> lat/lng)
    google_geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    google_maps_api_key: str = ""

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    # Onboarding
    address_debounce_seconds: float = 0.5
    min_password_length: int = 6
    session_ttl_seconds: int = 3600  # idle sessions are discarded after 1h

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
