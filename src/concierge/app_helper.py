import os

import toml
from dotenv import find_dotenv, load_dotenv

from .llm.router import LLMRouter

# 從工作目錄往上找 .env；已存在的環境變數不覆蓋
load_dotenv(find_dotenv(usecwd=True))


def get_app_config():
    config_path = os.getenv(
        "CONCIERGE_CONFIG_PATH",
        os.path.join(os.getcwd(), "concierge.toml")
    )
    # 沒有 toml 時只用環境變數（.env）設定
    if not os.path.exists(config_path):
        return {}
    return toml.load(config_path)


def create_router(logger=None) -> LLMRouter:
    """process 啟動時建立一次，之後以參數注入給 chat handler / 行程產生器。"""
    return LLMRouter.from_config(get_app_config(), logger=logger)
