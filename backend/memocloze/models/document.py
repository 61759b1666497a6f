from pydantic import BaseModel


class DocumentCreate(BaseModel):
    title: str
    content: str = ""


class DocumentUpdate(BaseModel):
    title: str | None = None
    content: str | None = None


class Document(BaseModel):
    id: str
    title: str
    content: str
    created_at: str
    updated_at: str


class DocumentList(BaseModel):
    items: list[Document]
    total: int
    offset: int
    limit: int
