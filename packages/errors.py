"""Error taxonomy shared by the ingest engine, the stores and the API."""


class MalformedPayload(ValueError):
    """A payload fragment does not have the shape its dialect expects.

    Raised inside the extractor and always caught there; the fragment is
    omitted from the result.
    """


class ValidationSkip(ValueError):
    """A sub-record cannot be given an identity and is dropped."""


class StoreUnavailable(RuntimeError):
    """The persistence backend failed to read or write."""
