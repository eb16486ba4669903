from __future__ import annotations

import random


DEFAULT_WORDS_ZH: list[str] = [
    "苹果", "香蕉", "月亮", "太阳", "星星", "大海", "森林", "沙漠", "火山", "冰川",
    "城堡", "医院", "学校", "银行", "机场", "车站", "剧院", "监狱", "教堂", "工厂",
    "钢琴", "吉他", "鼓", "喇叭", "小提琴", "相机", "电脑", "手机", "电视", "收音机",
    "老虎", "狮子", "熊猫", "兔子", "狐狸", "老鹰", "鲸鱼", "鲨鱼", "蝴蝶", "蜜蜂",
    "医生", "警察", "厨师", "海盗", "忍者", "国王", "公主", "间谍", "小丑", "巫师",
    "火箭", "飞机", "轮船", "火车", "自行车", "潜艇", "坦克", "卡车", "气球", "降落伞",
    "钥匙", "锁", "镜子", "雨伞", "蜡烛", "灯泡", "时钟", "地图", "指南针", "望远镜",
    "面包", "蛋糕", "饺子", "咖啡", "茶", "牛奶", "巧克力", "冰淇淋", "汉堡", "披萨",
    "龙", "凤凰", "独角兽", "幽灵", "天使", "恶魔", "机器人", "外星人", "僵尸", "吸血鬼",
    "钻石", "黄金", "水晶", "珍珠", "硬币", "皇冠", "宝剑", "盾牌", "弓箭", "锤子",
    "雪花", "彩虹", "闪电", "台风", "地震", "瀑布", "岛屿", "山峰", "河流", "洞穴",
    "足球", "篮球", "网球", "拳击", "游泳", "滑雪", "赛车", "象棋", "扑克", "魔方",
    "书", "笔", "信封", "邮票", "报纸", "日记", "字典", "画", "雕像", "博物馆",
    "心脏", "眼睛", "手", "影子", "梦", "记忆", "秘密", "谜语", "密码", "迷宫",
    "长城", "金字塔", "埃及", "中国", "巴黎", "伦敦", "纽约", "东京", "罗马", "北极",
]


def pick_words(words: list[str], count: int, rng: random.Random | None = None) -> list[str]:
    """Pick ``count`` distinct, non-empty words; fewer when the pool is short."""
    seen: set[str] = set()
    pool: list[str] = []
    for w in words:
        t = (w or "").strip()
        if t and t not in seen:
            seen.add(t)
            pool.append(t)

    r = rng or random
    return r.sample(pool, min(count, len(pool)))
