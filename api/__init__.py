"""
API 層

FastAPI routers，只負責把 HTTP 請求轉給 core 層並把異常轉成 HTTP 狀態碼：
- players：玩家、餘額、歷史
- rounds：開局、決策、crash 倍率輪詢
"""
