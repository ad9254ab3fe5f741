from dataclasses import dataclass


@dataclass(frozen=True)
class ExternalIdentity:
    raw_name: str
    canonical_name: str

    def __bool__(self):
        return bool(self.canonical_name)


def extract_authname(request, sources):
    """Return the first non-empty principal name found in request.META."""
    for key in sources:
        value = request.META.get(key)
        if value and value.strip():
            return value.strip()
    return ""


def normalize_authname(name, strip_prefix=True, strip_domain=True):
    if not name:
        return ""
    if strip_prefix and "\\" in name:
        name = name.rsplit("\\", 1)[1]
    if strip_domain and "@" in name:
        name = name.split("@", 1)[0]
    return name


def get_external_identity(request, conf):
    raw = extract_authname(request, conf.name_sources)
    return ExternalIdentity(
        raw_name=raw,
        canonical_name=normalize_authname(raw, conf.strip_prefix, conf.strip_domain),
    )
