# gradelink/run.py

import uvicorn
from gradelink.core.config import settings

def main() -> None:
    # 开发环境下启用热重载
    uvicorn.run(
        "gradelink.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_ENV == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )

if __name__ == "__main__":
    main()
