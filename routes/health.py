from fastapi import APIRouter, Depends, Request

from utils.database import Database

router = APIRouter()


def get_db(request: Request) -> Database:
    return request.app.state.db


@router.get("/")
def root():
    return {"status": "ok"}


@router.get("/db")
async def db_health(db: Database = Depends(get_db)):
    try:
        await db.ping()
        return {"status": "ok", "database": db.db_type}
    except Exception as e:
        return {"status": "error", "database": db.db_type, "detail": str(e)}
