import logging

from django.conf import settings

logger = logging.getLogger(__name__)

GATEWAY_MAP = {
    "VNPAY": "apps.core.services.payments.vnpay.VnpayGateway",
}


def get_gateway_class(provider):
    from django.utils.module_loading import import_string
    path = GATEWAY_MAP.get(provider)
    if not path:
        raise ValueError(f"Unknown payment provider: {provider}")
    return import_string(path)


def get_gateway_config(provider):
    if provider == "VNPAY":
        return {
            "tmn_code": settings.VNPAY_TMN_CODE,
            "hash_secret": settings.VNPAY_HASH_SECRET,
            "url": settings.VNPAY_URL,
            "return_url": settings.VNPAY_RETURN_URL,
            "version": settings.VNPAY_VERSION,
            "command": settings.VNPAY_COMMAND,
        }
    return {}


def get_gateway_for_provider(provider="VNPAY"):
    cls = get_gateway_class(provider)
    config = get_gateway_config(provider)
    if not config.get("hash_secret"):
        logger.warning("Payment gateway %s has no hash secret configured", provider)
    return cls(config)
