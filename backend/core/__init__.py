"""
core - 领域无关的框架层

- engine: 表驱动状态机、键控锁
- persistence: 持久化提供者接口（原子的条件插入）
- notification: 通知渠道接口

app 层实现具体领域（座位、时段、预订），core 不依赖 app。
"""

__version__ = "0.1.0"
