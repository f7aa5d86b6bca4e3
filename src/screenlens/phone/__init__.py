from screenlens.phone.tags import PhoneTag, PhoneTagLookupClient

__all__ = ["PhoneTag", "PhoneTagLookupClient"]
