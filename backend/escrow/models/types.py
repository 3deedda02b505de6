from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

# Money columns: two decimal places, Decimal on the Python side.
Money = Numeric(12, 2, asdecimal=True)


class CaseInsensitiveEnum(TypeDecorator):
    """Store a ``str`` enum by its lowercase value in a VARCHAR column.

    Accepts enum members or strings in any case on the way in, so raw SQL
    (partial indexes, check constraints) can rely on lowercase literals.
    """

    impl = String(40)
    cache_ok = True

    def __init__(self, enum_cls, **kwargs):
        super().__init__(**kwargs)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, self.enum_cls):
            return value.value
        return self.enum_cls(str(value).lower()).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(str(value).lower())
