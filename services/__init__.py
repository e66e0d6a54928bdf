"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換、不直接改餘額：
- RngService：唯一的亂數來源
- PayoffService：派彩共用工具、下注上下限
- 各遊戲的 resolver：coinflip / penalty / slots / roulette / blackjack / mines / crash
- HistoryService：回合歷史的寫入與查詢
"""
