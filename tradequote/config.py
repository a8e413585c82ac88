from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./quotes.db"
    LABOR_RATE_DEFAULT: float = 85.00
    MARKUP_DEFAULT: float = 20.0
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"

    # Price fetching: 'ai' (Gemini estimate) or 'catalog' (offline list).
    # Business settings can switch a shop to the hardware store API instead.
    PRICING_SOURCE: str = "ai"
    PRICE_FETCH_DELAY_SECONDS: float = 0.5

    # Hardware store catalog API (OAuth client credentials)
    HARDWARE_STORE_CLIENT_ID: str = ""
    HARDWARE_STORE_CLIENT_SECRET: str = ""
    HARDWARE_STORE_AUTH_URL: str = "https://connect.sandbox.api.bunnings.com.au"
    HARDWARE_STORE_ITEM_URL: str = "https://item.sandbox.api.bunnings.com.au"
    HARDWARE_STORE_PRICING_URL: str = "https://pricing.sandbox.api.bunnings.com.au"
    HARDWARE_STORE_TIMEOUT: int = 15

    JOB_ANALYSIS_RETRIES: int = 3

    class Config:
        env_file = ".env"


settings = Settings()
