# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass
from typing import Optional
from shared.types import AuthUser


@dataclass
class AuthResult:
    """Result of a sign-up or sign-in attempt."""

    success: bool
    user: Optional[AuthUser] = None
    error: Optional[str] = None


@dataclass
class OperationResult:
    """Result of a mutation that produces no new document."""

    success: bool
    error: Optional[str] = None


@dataclass
class CreateChatResult:
    success: bool
    chat_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SendMessageResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MarkReadResult:
    success: bool
    updated: int = 0
    error: Optional[str] = None
