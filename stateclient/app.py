#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PyQt5 Shared Planner - Client
-----------------------------
기능 요약
- GET /state 로 현재 문서를 받아 할 일 목록/취침 시간을 표시
- WebSocket 구독으로 다른 클라이언트의 변경을 실시간 반영
- 로컬 편집 시 문서 전체를 POST /state 로 교체 저장 (last-writer-wins)
- 할 일별 계획 시간과 타이머(시작/정지), 완료 시 실제 시간 기록
- 취침까지 남은 시간, 여유 시간, 부하율을 1초마다 갱신
- 알 수 없는 필드(timers 등)는 마지막으로 받은 문서 그대로 유지
"""

import argparse
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from PyQt5 import QtCore, QtWidgets

from . import planner
from .api import (
    ApiError,
    Subscription,
    api_base_from_env,
    connect_shared_state,
    save_shared_state,
    ws_url_from_env,
)


# =====================
# 네트워크 워커
# =====================
class NetWorker(QtCore.QObject):
    connected = QtCore.pyqtSignal()
    disconnected = QtCore.pyqtSignal()
    error = QtCore.pyqtSignal(str)
    stateReceived = QtCore.pyqtSignal(dict)
    status = QtCore.pyqtSignal(str)

    def __init__(self):
        super().__init__()
        self._subscription: Optional[Subscription] = None
        self.api_base: Optional[str] = None

    def connect_to(self, api_base: str, ws_url: str) -> bool:
        if self._subscription and not self._subscription.closed:
            self.error.emit("Already connected")
            return True
        self.api_base = api_base
        try:
            self.status.emit(f"Connecting {ws_url} ...")
            # 연결 직후 서버가 스냅샷 Envelope을 먼저 보낸다
            self._subscription = connect_shared_state(self.stateReceived.emit, ws_url)
        except ApiError as e:
            self._subscription = None
            self.error.emit(f"Connect failed: {e}")
            return False
        self.connected.emit()
        self.status.emit("Connected")
        return True

    def close(self):
        if self._subscription:
            self._subscription.close()
        self._subscription = None
        self.disconnected.emit()
        self.status.emit("Disconnected")

    def save(self, document: Dict[str, Any]):
        try:
            save_shared_state(document, self.api_base)
        except ApiError as e:
            self.error.emit(f"Save failed: {e}")


# =====================
# 문서 편집 유틸
# =====================
def now_ms() -> int:
    return int(time.time() * 1000)


def new_todo(title: str, planned_min: int = 0) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": uuid.uuid4().hex,
        "title": title,
        "plannedMin": planner.clamp_int(planned_min),
        "actualMin": None,
        "done": False,
        "timerRunning": False,
        "timerStartedAtMs": None,
        "timerAccumulatedMs": 0,
        "createdAt": now,
        "updatedAt": now,
    }


def todos_of(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    todos = document.get("todos")
    if not isinstance(todos, list):
        return []
    return [t for t in todos if isinstance(t, dict)]


def todo_label(todo: Dict[str, Any], now: int) -> str:
    text = f"{todo.get('title', '')}  [plan {planner.clamp_int(todo.get('plannedMin') or 0)}m"
    if todo.get("actualMin") is not None:
        text += f" / actual {planner.clamp_int(todo.get('actualMin'))}m"
    text += "]"
    if todo.get("timerRunning"):
        text += f"  ⏱ {planner.format_duration_ms(planner.task_timer_ms(todo, now))}"
    return text


# =====================
# 메인 윈도우
# =====================
class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, api_base: str, ws_url: str):
        super().__init__()
        self.setWindowTitle("Shared Planner - PyQt Client")
        self.resize(600, 700)

        self.worker = NetWorker()

        # 상태
        self.document: Dict[str, Any] = {}
        self.applying_remote: bool = False  # 원격 적용 중에는 itemChanged 무시

        # UI
        self._build_ui(api_base, ws_url)

        # 신호 연결
        self.worker.connected.connect(self.on_connected)
        self.worker.disconnected.connect(self.on_disconnected)
        self.worker.error.connect(self.on_error)
        self.worker.stateReceived.connect(self.on_state)
        self.worker.status.connect(self.set_status)

    # ---------- UI ----------
    def _build_ui(self, api_base: str, ws_url: str):
        central = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(central)

        top = QtWidgets.QHBoxLayout()
        self.ed_api = QtWidgets.QLineEdit(api_base)
        self.ed_ws = QtWidgets.QLineEdit(ws_url)
        self.btn_connect = QtWidgets.QPushButton("Connect")
        self.lbl_updated = QtWidgets.QLabel("updated: -")
        top.addWidget(QtWidgets.QLabel("API:"))
        top.addWidget(self.ed_api)
        top.addWidget(QtWidgets.QLabel("WS:"))
        top.addWidget(self.ed_ws)
        top.addWidget(self.btn_connect)

        bed = QtWidgets.QHBoxLayout()
        self.ed_bedtime = QtWidgets.QLineEdit()
        self.ed_bedtime.setPlaceholderText("HH:MM")
        bed.addWidget(QtWidgets.QLabel("Bedtime:"))
        bed.addWidget(self.ed_bedtime)
        bed.addWidget(self.lbl_updated)

        # 요약: 취침까지 / 여유 / 부하율 / 합계
        summary = QtWidgets.QHBoxLayout()
        self.lbl_until_bed = QtWidgets.QLabel("until bed: -")
        self.lbl_buffer = QtWidgets.QLabel("buffer: -")
        self.lbl_progress = QtWidgets.QLabel("load: -")
        self.lbl_sums = QtWidgets.QLabel("left: 0m / done: 0m")
        for w in (self.lbl_until_bed, self.lbl_buffer, self.lbl_progress, self.lbl_sums):
            summary.addWidget(w)

        self.todo_list = QtWidgets.QListWidget()

        add = QtWidgets.QHBoxLayout()
        self.ed_title = QtWidgets.QLineEdit()
        self.ed_title.setPlaceholderText("New todo ...")
        self.sp_planned = QtWidgets.QSpinBox()
        self.sp_planned.setRange(0, 10_000)
        self.sp_planned.setSuffix(" min")
        self.btn_add = QtWidgets.QPushButton("Add")
        self.btn_timer = QtWidgets.QPushButton("Start/Stop")
        self.btn_remove = QtWidgets.QPushButton("Remove")
        add.addWidget(self.ed_title)
        add.addWidget(self.sp_planned)
        add.addWidget(self.btn_add)
        add.addWidget(self.btn_timer)
        add.addWidget(self.btn_remove)

        layout.addLayout(top)
        layout.addLayout(bed)
        layout.addLayout(summary)
        layout.addWidget(self.todo_list)
        layout.addLayout(add)
        self.setCentralWidget(central)

        # status bar
        self.status = QtWidgets.QStatusBar()
        self.setStatusBar(self.status)

        # event bindings
        self.btn_connect.clicked.connect(self.ui_connect)
        self.btn_add.clicked.connect(self.ui_add)
        self.ed_title.returnPressed.connect(self.ui_add)
        self.btn_remove.clicked.connect(self.ui_remove)
        self.btn_timer.clicked.connect(self.ui_toggle_timer)
        self.ed_bedtime.editingFinished.connect(self.ui_bedtime)
        self.todo_list.itemChanged.connect(self.on_item_changed)

        # 남은 시간/타이머 표시 갱신
        self.ticker = QtCore.QTimer(self)
        self.ticker.setInterval(1000)
        self.ticker.timeout.connect(self.refresh_summary)
        self.ticker.start()

    def set_status(self, s: str):
        self.status.showMessage(s, 5000)

    # ---------- 연결 ----------
    @QtCore.pyqtSlot()
    def ui_connect(self):
        api_base = self.ed_api.text().strip()
        ws_url = self.ed_ws.text().strip()
        self.worker.connect_to(api_base, ws_url)

    @QtCore.pyqtSlot()
    def on_connected(self):
        self.set_status("Connected. Waiting for snapshot ...")

    @QtCore.pyqtSlot()
    def on_disconnected(self):
        self.set_status("Disconnected")

    @QtCore.pyqtSlot(str)
    def on_error(self, err: str):
        self.set_status(f"Error: {err}")

    # ---------- 원격 적용 ----------
    @QtCore.pyqtSlot(dict)
    def on_state(self, document: Dict[str, Any]):
        self.document = document
        self.applying_remote = True
        try:
            self.todo_list.clear()
            now = now_ms()
            for todo in todos_of(document):
                item = QtWidgets.QListWidgetItem(todo_label(todo, now))
                item.setData(QtCore.Qt.UserRole, todo.get("id"))
                item.setFlags(item.flags() | QtCore.Qt.ItemIsUserCheckable)
                item.setCheckState(QtCore.Qt.Checked if todo.get("done") else QtCore.Qt.Unchecked)
                self.todo_list.addItem(item)
            if not self.ed_bedtime.hasFocus():
                bedtime = document.get("bedtime")
                self.ed_bedtime.setText(bedtime if isinstance(bedtime, str) else "")
        finally:
            self.applying_remote = False

        updated_at = document.get("updatedAt")
        if isinstance(updated_at, int) and updated_at > 0:
            stamp = time.strftime("%H:%M:%S", time.localtime(updated_at / 1000))
            self.lbl_updated.setText(f"updated: {stamp}")
        else:
            self.lbl_updated.setText("updated: -")
        self.refresh_summary()

    @QtCore.pyqtSlot()
    def refresh_summary(self):
        now = now_ms()
        todos = todos_of(self.document)
        sums = planner.get_sums(todos)
        until = planner.time_until_bed_ms(planner.bedtime_minutes(self.document.get("bedtime")), now)
        buffer = planner.buffer_ms(until, sums["totalWorkMin"])
        load = planner.progress(until, sums["totalWorkMin"])

        self.lbl_until_bed.setText(
            "until bed: -" if until is None else f"until bed: {planner.format_duration_ms(until)}"
        )
        self.lbl_buffer.setText("buffer: -" if buffer is None else f"buffer: {planner.format_duration_ms(buffer)}")
        self.lbl_progress.setText("load: -" if load is None else f"load: {load}%")
        self.lbl_sums.setText(f"left: {sums['plannedNotDoneMin']}m / done: {sums['actualDoneMin']}m")

        # 실행 중인 타이머만 라벨 갱신
        for row, todo in enumerate(todos):
            if not todo.get("timerRunning"):
                continue
            item = self.todo_list.item(row)
            if item is not None and item.data(QtCore.Qt.UserRole) == todo.get("id"):
                self.applying_remote = True
                try:
                    item.setText(todo_label(todo, now))
                finally:
                    self.applying_remote = False

    # ---------- 로컬 편집 → 전체 문서 저장 ----------
    def push(self, document: Dict[str, Any]):
        # 서버 브로드캐스트로 최종 문서가 돌아오면 그때 화면 갱신
        self.worker.save(document)

    @QtCore.pyqtSlot()
    def ui_add(self):
        title = self.ed_title.text().strip()
        if not title:
            return
        doc = dict(self.document)
        doc["todos"] = todos_of(self.document) + [new_todo(title, self.sp_planned.value())]
        self.ed_title.clear()
        self.push(doc)

    @QtCore.pyqtSlot()
    def ui_toggle_timer(self):
        item = self.todo_list.currentItem()
        if item is None:
            return
        todo_id = item.data(QtCore.Qt.UserRole)
        todos = todos_of(self.document)
        running = any(t.get("id") == todo_id and t.get("timerRunning") for t in todos)
        if running:
            todos = planner.stop_timer(todos, todo_id, now_ms())
        else:
            todos = planner.start_timer(todos, todo_id, now_ms())
        doc = dict(self.document)
        doc["todos"] = todos
        self.push(doc)

    @QtCore.pyqtSlot()
    def ui_remove(self):
        item = self.todo_list.currentItem()
        if item is None:
            return
        todo_id = item.data(QtCore.Qt.UserRole)
        doc = dict(self.document)
        doc["todos"] = [t for t in todos_of(self.document) if t.get("id") != todo_id]
        self.push(doc)

    @QtCore.pyqtSlot()
    def ui_bedtime(self):
        value = self.ed_bedtime.text().strip() or None
        if value == self.document.get("bedtime"):
            return
        if value is not None and not planner.is_bedtime_valid(value):
            self.set_status("Bedtime must be HH:MM between 14:00 and 23:59 (exclusive)")
            current = self.document.get("bedtime")
            self.ed_bedtime.setText(current if isinstance(current, str) else "")
            return
        doc = dict(self.document)
        doc["bedtime"] = value
        self.push(doc)

    @QtCore.pyqtSlot(QtWidgets.QListWidgetItem)
    def on_item_changed(self, item: QtWidgets.QListWidgetItem):
        if self.applying_remote:
            return
        todo_id = item.data(QtCore.Qt.UserRole)
        done = item.checkState() == QtCore.Qt.Checked
        todos = todos_of(self.document)
        if not any(t.get("id") == todo_id and bool(t.get("done")) != done for t in todos):
            return
        stamp = datetime.now(timezone.utc).isoformat()
        todos = [
            dict(t, updatedAt=stamp) if t.get("id") == todo_id else t
            for t in planner.set_done(todos, todo_id, done, now_ms())
        ]
        doc = dict(self.document)
        doc["todos"] = todos
        self.push(doc)

    def closeEvent(self, event):
        self.worker.close()
        super().closeEvent(event)


# =====================
# 진입점
# =====================
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Shared Planner - Client")
    parser.add_argument("--api-base", default=api_base_from_env(), help="HTTP API 주소")
    parser.add_argument("--ws-url", default=ws_url_from_env(), help="WebSocket 푸시 주소")
    return parser.parse_args(argv)


def main():
    args = parse_args()
    app = QtWidgets.QApplication(sys.argv)
    w = MainWindow(args.api_base, args.ws_url)
    w.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
