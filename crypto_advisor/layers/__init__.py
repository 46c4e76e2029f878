"""
数据流分层架构
  Layer 0 – RateLimit    : 进程级调用间隔闸门
  Layer 1 – Acquisition  : 行情获取（CoinGecko）
  Layer 2 – Cache        : 两级缓存（内存 → 文件）
  Layer 3 – Processing   : 滑动窗口特征构建
  Layer 4 – Analysis     : 回归模型打分
"""
