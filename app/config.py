from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8')

    # Cashfree (card / UPI)
    cashfree_app_id: str = Field('', alias='CASHFREE_APP_ID')
    cashfree_secret_key: str = Field('', alias='CASHFREE_SECRET_KEY')
    cashfree_api_version: str = Field('2023-08-01', alias='CASHFREE_API_VERSION')
    cashfree_base_url: str = Field('https://api.cashfree.com/pg', alias='CASHFREE_BASE_URL')
    cashfree_currency: str = Field('INR', alias='CASHFREE_CURRENCY')

    # OxaPay (crypto)
    oxapay_merchant_api_key: str = Field('', alias='OXAPAY_MERCHANT_API_KEY')
    oxapay_base_url: str = Field('https://api.oxapay.com/v1', alias='OXAPAY_BASE_URL')
    oxapay_currency: str = Field('USD', alias='OXAPAY_CURRENCY')
    oxapay_to_currency: str = Field('USDT', alias='OXAPAY_TO_CURRENCY')
    oxapay_lifetime_minutes: int = Field(30, alias='OXAPAY_LIFETIME_MINUTES')
    oxapay_fee_paid_by_payer: int = Field(1, alias='OXAPAY_FEE_PAID_BY_PAYER')
    oxapay_under_paid_coverage: float = Field(2.5, alias='OXAPAY_UNDER_PAID_COVERAGE')
    oxapay_sandbox: bool = Field(False, alias='OXAPAY_SANDBOX')
    oxapay_thanks_message: str = Field('Thank you for your purchase!', alias='OXAPAY_THANKS_MESSAGE')

    # A4F (image generation)
    a4f_api_key: str = Field('', alias='A4F_API_KEY')
    a4f_base_url: str = Field('https://api.a4f.co/v1', alias='A4F_BASE_URL')
    a4f_model_id: str = Field('provider-4/imagen-3.5', alias='A4F_MODEL_ID')
    a4f_image_size: str = Field('1024x1024', alias='A4F_IMAGE_SIZE')
    max_images_per_request: int = Field(6, alias='MAX_IMAGES_PER_REQUEST')

    # Outbound HTTP
    provider_timeout_seconds: float = Field(20.0, alias='PROVIDER_TIMEOUT_SECONDS')

    # Web
    web_host: str = Field('127.0.0.1', alias='WEB_HOST')
    web_port: int = Field(9010, alias='WEB_PORT')
    cors_allow_origins: str = Field('*', alias='CORS_ALLOW_ORIGINS')

    # Client
    backend_api_url: str = Field('', alias='BACKEND_API_URL')
    adapter_api_url: str = Field('http://127.0.0.1:9010', alias='ADAPTER_API_URL')
    image_cost_credits: int = Field(1, alias='IMAGE_COST_CREDITS')

    # Logging
    log_level: str = Field('INFO', alias='LOG_LEVEL')

    def cors_origins(self) -> List[str]:
        if not self.cors_allow_origins.strip():
            return []
        return [x.strip() for x in self.cors_allow_origins.split(',') if x.strip()]


@dataclass(frozen=True)
class CashfreeConfig:
    app_id: str = ''
    secret_key: str = ''
    api_version: str = '2023-08-01'
    base_url: str = 'https://api.cashfree.com/pg'
    currency: str = 'INR'
    timeout: float = 20.0

    @property
    def enabled(self) -> bool:
        return bool(self.app_id.strip() and self.secret_key.strip())


@dataclass(frozen=True)
class OxapayConfig:
    merchant_api_key: str = ''
    base_url: str = 'https://api.oxapay.com/v1'
    currency: str = 'USD'
    to_currency: str = 'USDT'
    lifetime_minutes: int = 30
    fee_paid_by_payer: int = 1
    under_paid_coverage: float = 2.5
    sandbox: bool = False
    thanks_message: str = 'Thank you for your purchase!'
    timeout: float = 20.0

    @property
    def enabled(self) -> bool:
        return bool(self.merchant_api_key.strip())


@dataclass(frozen=True)
class ImageProviderConfig:
    api_key: str = ''
    base_url: str = 'https://api.a4f.co/v1'
    model_id: str = 'provider-4/imagen-3.5'
    image_size: str = '1024x1024'
    max_images: int = 6
    timeout: float = 20.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key.strip())

    def masked_key(self) -> str | None:
        if not self.api_key:
            return None
        return f'{self.api_key[:6]}...'


@dataclass(frozen=True)
class ClientConfig:
    backend_api_url: str = ''
    adapter_api_url: str = 'http://127.0.0.1:9010'
    image_cost_credits: int = 1
    timeout: float = 20.0


@dataclass(frozen=True)
class AppConfig:
    cashfree: CashfreeConfig
    oxapay: OxapayConfig
    image_provider: ImageProviderConfig
    client: ClientConfig
    cors_origins: tuple[str, ...] = ('*',)


def build_config(settings: Settings) -> AppConfig:
    timeout = float(settings.provider_timeout_seconds)
    return AppConfig(
        cashfree=CashfreeConfig(
            app_id=settings.cashfree_app_id.strip(),
            secret_key=settings.cashfree_secret_key.strip(),
            api_version=settings.cashfree_api_version.strip(),
            base_url=settings.cashfree_base_url.rstrip('/'),
            currency=settings.cashfree_currency.upper(),
            timeout=timeout,
        ),
        oxapay=OxapayConfig(
            merchant_api_key=settings.oxapay_merchant_api_key.strip(),
            base_url=settings.oxapay_base_url.rstrip('/'),
            currency=settings.oxapay_currency.upper(),
            to_currency=settings.oxapay_to_currency.upper(),
            lifetime_minutes=settings.oxapay_lifetime_minutes,
            fee_paid_by_payer=settings.oxapay_fee_paid_by_payer,
            under_paid_coverage=settings.oxapay_under_paid_coverage,
            sandbox=settings.oxapay_sandbox,
            thanks_message=settings.oxapay_thanks_message,
            timeout=timeout,
        ),
        image_provider=ImageProviderConfig(
            api_key=settings.a4f_api_key.strip(),
            base_url=settings.a4f_base_url.rstrip('/'),
            model_id=settings.a4f_model_id.strip(),
            image_size=settings.a4f_image_size.strip(),
            max_images=max(1, settings.max_images_per_request),
            timeout=timeout,
        ),
        client=ClientConfig(
            backend_api_url=settings.backend_api_url.rstrip('/'),
            adapter_api_url=settings.adapter_api_url.rstrip('/'),
            image_cost_credits=max(0, settings.image_cost_credits),
            timeout=timeout,
        ),
        cors_origins=tuple(settings.cors_origins()),
    )


@lru_cache

def get_settings() -> Settings:
    return Settings()


@lru_cache

def get_config() -> AppConfig:
    return build_config(get_settings())
