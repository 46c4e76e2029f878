"""pytest 全局配置：缓存目录指向临时目录，避免测试写入仓库"""

import os
import tempfile

os.environ.setdefault("CACHE_DIR", tempfile.mkdtemp(prefix="crypto_advisor_cache_"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
