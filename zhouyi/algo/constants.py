LINE_COUNT = 6  # 六爻
COIN_COUNT = 3  # 三枚铜钱
COIN_TAILS = 2  # 字（阴）
COIN_HEADS = 3  # 背（阳）

VALID_LINE_VALUES = (6, 7, 8, 9)

# 各阶段时长（单位：秒）
TOSS_DURATION = 1.5
REVEAL_PAUSE = 0.5
THINKING_DURATION = 2.0
