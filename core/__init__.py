"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理回合的狀態轉換
- RoundManager：下注、結算、派彩、寫入歷史
- Ledger：玩家餘額的存取介面
- Locks：並發控制工具
- Ticker：Crash 倍率與閒置回合的背景結算
"""
