class ConfigurationError(TypeError):
    pass


class MissingEntityName(ConfigurationError):
    pass


class TableWithoutIdentity(ConfigurationError):
    pass


class ColumnNotFound(ConfigurationError):
    pass


class UnsupportedType(ConfigurationError):
    pass


class IdentityConflict(RuntimeError):
    pass


class MissingIdentity(ValueError):
    pass
