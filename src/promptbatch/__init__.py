"""promptbatch - drive a browser chat surface from a CSV work queue.

Each row of the queue becomes one exchange: text is entered, attachments are
uploaded, the message is sent and the reply is detected by polling the page.
Results are written back to the queue after every row so a run can be
interrupted and resumed at any point.
"""

__version__ = "0.3.0"
