"""
Resource Engine - Networks
==========================

PyTorch network definitions for the two regression models:

- ResourceAllocationNet: feed-forward classifier over success-rate bins
- DurationPredictionNet: LSTM regressor over the 6 outcome labels
"""

from __future__ import annotations

import torch
import torch.nn as nn

from .features import NUM_FEATURES, NUM_LABELS

SUCCESS_BINS = 10


class ResourceAllocationNet(nn.Module):
    """17 -> 64 -> 32 -> 16 -> success-rate bins."""

    def __init__(self, input_size: int = NUM_FEATURES, num_bins: int = SUCCESS_BINS):
        super().__init__()
        self.num_bins = num_bins
        self.net = nn.Sequential(
            nn.Linear(input_size, 64),
            nn.ReLU(),
            nn.Dropout(0.3),
            nn.Linear(64, 32),
            nn.ReLU(),
            nn.Dropout(0.2),
            nn.Linear(32, 16),
            nn.ReLU(),
            nn.Dropout(0.2),
            nn.Linear(16, num_bins),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.net(x)

    def expected_success(self, logits: torch.Tensor) -> torch.Tensor:
        """Expected success rate (bin centres weighted by softmax)."""
        centres = (torch.arange(self.num_bins, dtype=logits.dtype) + 0.5) / self.num_bins
        return torch.softmax(logits, dim=-1) @ centres


class DurationPredictionNet(nn.Module):
    """LSTM(64) over a one-step sequence, then dense 32 and a linear head."""

    def __init__(self, input_size: int = NUM_FEATURES, hidden_size: int = 64, output_size: int = NUM_LABELS):
        super().__init__()
        self.lstm = nn.LSTM(input_size=input_size, hidden_size=hidden_size, batch_first=True)
        self.dropout = nn.Dropout(0.2)
        self.head = nn.Sequential(
            nn.Linear(hidden_size, 32),
            nn.ReLU(),
            nn.Linear(32, output_size),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if x.dim() == 2:
            x = x.unsqueeze(1)
        _, (h_n, _) = self.lstm(x)
        return self.head(self.dropout(h_n[-1]))


def success_bin(rate: torch.Tensor, num_bins: int = SUCCESS_BINS) -> torch.Tensor:
    """Bin index of success rates in [0, 1]."""
    return torch.clamp((rate * num_bins).long(), 0, num_bins - 1)
