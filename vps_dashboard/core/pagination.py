from fastapi import Query

# The dashboard renders every server on one page, so the default page is generous
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class PaginationParams:
    def __init__(
        self,
        limit: int = Query(
            default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"
        ),
        offset: int = Query(default=0, ge=0, description="Number of items to skip"),
    ) -> None:
        self.limit = limit
        self.offset = offset
