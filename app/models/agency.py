from sqlmodel import Field, SQLModel


class Agency(SQLModel, table=True):
    __tablename__ = "agencies"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    logo: str | None = None
    primary_color: str | None = None


class HostUser(SQLModel, table=True):
    __tablename__ = "host_users"
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int = Field(foreign_key="agencies.id", index=True)
    name: str
    email: str
    booking_slug: str | None = Field(default=None, unique=True, index=True)
    is_active: bool = True
