"""
Crypto Advisor 行情与选币服务
独立的行情获取 + 模型打分微服务，提供 HTTP 接口

架构分层：
  限流层     (RateLimit)    → 进程级 API 调用间隔闸门
  缓存层     (Cache)        → 内存 / 文件两级缓存
  数据获取层 (Acquisition)  → 从 CoinGecko 拉取现价与历史价格
  处理层     (Processing)   → 滑动窗口特征构建
  分析层     (Analysis)     → 回归模型训练与增长率打分
"""

__version__ = "1.0.0"
