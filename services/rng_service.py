"""
亂數服務：所有遊戲結果的唯一亂數來源

Resolver 一律透過 RandomSource 取亂數，不直接呼叫 random 模組，
這樣可以：
- 正式環境換成 SystemRandom（作業系統熵源）
- 測試時注入固定序列
"""
import random
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


class RandomSource:
    """均勻亂數來源（預設為可設定 seed 的 Mersenne Twister）"""

    def __init__(self, seed: Optional[int] = None, secure: bool = False):
        if secure:
            # SystemRandom 會忽略 seed
            self._random = random.SystemRandom()
        else:
            self._random = random.Random(seed)
        self.secure = secure

    def random(self) -> float:
        """[0, 1) 之間的均勻實數"""
        return self._random.random()

    def randint(self, low: int, high: int) -> int:
        """[low, high] 之間的均勻整數（含兩端）"""
        if low > high:
            raise ValueError(f"Empty range [{low}, {high}]")
        return low + int(self.random() * (high - low + 1))

    def choice(self, options: Sequence[T]) -> T:
        return options[self.randint(0, len(options) - 1)]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """
        Fisher–Yates 洗牌，回傳新的 list（不修改輸入）
        """
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def sample_indices(self, population: int, k: int) -> List[int]:
        """
        從 range(population) 中取 k 個不重複的索引，排序後回傳

        用途：Mines 的地雷位置
        """
        if k > population:
            raise ValueError(f"Cannot sample {k} distinct values from {population}")
        picked = set()
        while len(picked) < k:
            picked.add(self.randint(0, population - 1))
        return sorted(picked)


def build_random_source(settings) -> RandomSource:
    return RandomSource(seed=settings.rng_seed, secure=settings.secure_rng)
